import pytest

from uav_onboard.config import IntersectionDecisionConfig
from uav_onboard.decision import (
    BranchDirection,
    BranchObservation,
    IntersectionAction,
    IntersectionDecisionEngine,
    IntersectionDecisionState,
    IntersectionDetection,
    IntersectionType,
    Point2f,
    decision_action_name,
    decision_state_name,
)


def make_config(**overrides):
    config = IntersectionDecisionConfig(
        cruise_window_frames=6,
        turn_confirm_frames=6,
        cooldown_frames=3,
        min_cross_branch_frames=2,
        min_t_branch_frames=2,
        min_l_branch_frames=3,
        min_branch_score=0.72,
        candidate_min_frames=2,
        min_prearm_frames=2,
        front_missing_frames=2,
        record_node_once_frames=4,
        node_advance_min_frames=4,
        turn_zone_y_min=0.42,
        turn_zone_y_max=0.68,
        late_zone_y=0.78,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def make_detection(kind, mask, y=360.0, score=0.82):
    present_scores = (0.88, 0.87, 0.86, 0.85)
    branches = [
        BranchObservation(
            direction=direction,
            present=bool(mask & (1 << direction.value)),
            score=present_scores[direction.value] if mask & (1 << direction.value) else 0.20,
        )
        for direction in BranchDirection
    ]
    return IntersectionDetection(
        valid=True,
        intersection_detected=kind in (IntersectionType.L, IntersectionType.T, IntersectionType.CROSS),
        type=kind,
        raw_type=kind,
        score=score,
        raw_score=score,
        center_px=Point2f(480.0, y),
        raw_center_px=Point2f(480.0, y),
        branches=branches,
        branch_mask=mask,
        branch_count=bin(mask).count("1"),
    )


def update(engine, detection, frame, turn_expected=False):
    return engine.update(detection, 960, 720, frame, frame * 83, turn_expected)


def test_straight_continues_without_event():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.UNKNOWN, 0), 1)
    decision = update(engine, make_detection(IntersectionType.STRAIGHT, 5), 2)
    assert decision.action == IntersectionAction.CONTINUE_STRAIGHT
    assert not decision.event_ready


def test_cross_is_accepted_and_records_event():
    engine = IntersectionDecisionEngine(make_config())
    saw_event = False
    for frame in range(1, 4):
        decision = update(engine, make_detection(IntersectionType.CROSS, 15), frame)
        saw_event = saw_event or decision.event_ready
    assert decision.accepted_type == IntersectionType.CROSS
    assert saw_event


def test_single_cross_frame_does_not_win_window():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.CROSS, 15), 1)
    update(engine, make_detection(IntersectionType.L, 3), 2)
    decision = update(engine, make_detection(IntersectionType.L, 3), 3)
    assert decision.accepted_type != IntersectionType.CROSS
    assert decision.accepted_type == IntersectionType.L
    assert decision.best_observed_type == IntersectionType.CROSS


def test_t_survives_noisy_frames():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.T, 11), 1)
    update(engine, make_detection(IntersectionType.L, 9), 2)
    update(engine, make_detection(IntersectionType.UNKNOWN, 1), 3)
    decision = update(engine, make_detection(IntersectionType.T, 11), 4)
    assert decision.accepted_type == IntersectionType.T
    assert decision.accepted_branch_mask == 11


def test_l_survives_single_cross_frame():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.L, 3), 1)
    update(engine, make_detection(IntersectionType.L, 3), 2)
    update(engine, make_detection(IntersectionType.CROSS, 15), 3)
    decision = update(engine, make_detection(IntersectionType.L, 3), 4)
    assert decision.accepted_type == IntersectionType.L


def test_t_with_front_does_not_require_turn():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.T, 11), 1)
    decision = update(engine, make_detection(IntersectionType.T, 11), 2)
    assert not decision.required_turn
    assert decision.action == IntersectionAction.CONTINUE_STRAIGHT
    assert decision.state == IntersectionDecisionState.NODE_RECORD


def test_missing_front_in_turn_zone_is_turn_ready():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.L, 2), 1)
    decision = update(engine, make_detection(IntersectionType.L, 2), 2)
    assert decision.turn_candidate
    assert decision.state == IntersectionDecisionState.TURN_READY
    assert decision.action == IntersectionAction.HOLD_POSITION


def test_expected_turn_far_away_prepares():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.T, 11, 120.0), 1, True)
    decision = update(engine, make_detection(IntersectionType.T, 11, 120.0), 2, True)
    assert decision.turn_candidate
    assert decision.state != IntersectionDecisionState.TURN_READY
    assert decision.action == IntersectionAction.PREPARE_TURN
    assert decision.approach_phase == "far"


def test_expected_turn_too_late_flags_overshoot():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.T, 11, 620.0), 1, True)
    decision = update(engine, make_detection(IntersectionType.T, 11, 620.0), 2, True)
    assert decision.overshoot_risk
    assert decision.too_late_to_turn
    assert decision.state != IntersectionDecisionState.TURN_READY
    assert decision.approach_phase == "passed"


def test_cooldown_blocks_events():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.CROSS, 15), 1)
    decision = update(engine, make_detection(IntersectionType.CROSS, 15), 2)
    assert decision.event_ready
    engine.start_cooldown()
    decision = update(engine, make_detection(IntersectionType.CROSS, 15), 3)
    assert decision.cooldown_active
    assert decision.state == IntersectionDecisionState.COOLDOWN
    assert not decision.event_ready


def test_window_metadata():
    engine = IntersectionDecisionEngine(make_config())
    first = update(engine, make_detection(IntersectionType.CROSS, 15), 1)
    assert first.window_frames == 1
    assert first.age_ms == 0
    second = update(engine, make_detection(IntersectionType.CROSS, 15), 2)
    assert second.window_frames == 2
    assert second.age_ms == 83
    assert second.center_y_norm == pytest.approx(0.5)
    assert second.approach_phase == "turn_zone"
    assert second.branch_evidence[0].present_frames == 2


def test_window_is_capped():
    engine = IntersectionDecisionEngine(make_config())
    for frame in range(1, 11):
        decision = update(engine, make_detection(IntersectionType.STRAIGHT, 5), frame)
    assert decision.window_frames == 6
    assert decision.age_ms == 5 * 83


def test_record_lockout_prevents_repeat_events():
    engine = IntersectionDecisionEngine(make_config())
    events = [
        update(engine, make_detection(IntersectionType.CROSS, 15), frame).event_ready
        for frame in range(1, 8)
    ]
    assert events == [False, True, False, False, False, True, False]


def test_reset_clears_window_and_cooldown():
    engine = IntersectionDecisionEngine(make_config())
    update(engine, make_detection(IntersectionType.CROSS, 15), 1)
    engine.start_cooldown()
    engine.reset()
    decision = update(engine, make_detection(IntersectionType.CROSS, 15), 2)
    assert not decision.cooldown_active
    assert decision.window_frames == 1


def test_disabled_engine_returns_default():
    engine = IntersectionDecisionEngine(make_config(enabled=False))
    decision = update(engine, make_detection(IntersectionType.CROSS, 15), 1)
    assert decision.state == IntersectionDecisionState.CRUISE
    assert decision.window_frames == 0
    assert decision.accepted_type == IntersectionType.NONE


def test_invalid_detection_gives_none():
    engine = IntersectionDecisionEngine(make_config())
    decision = update(engine, IntersectionDetection(), 1)
    assert decision.accepted_type == IntersectionType.NONE
    assert decision.state == IntersectionDecisionState.CRUISE


@pytest.mark.parametrize(
    ("state", "name"),
    [
        (IntersectionDecisionState.CRUISE, "cruise"),
        (IntersectionDecisionState.CANDIDATE, "candidate"),
        (IntersectionDecisionState.NODE_RECORD, "node_record"),
        (IntersectionDecisionState.TURN_CONFIRM, "turn_confirm"),
        (IntersectionDecisionState.TURN_READY, "turn_ready"),
        (IntersectionDecisionState.COOLDOWN, "cooldown"),
    ],
)
def test_state_names(state, name):
    assert decision_state_name(state) == name


@pytest.mark.parametrize(
    ("action", "name"),
    [
        (IntersectionAction.NONE, "none"),
        (IntersectionAction.CONTINUE_STRAIGHT, "continue"),
        (IntersectionAction.RECORD_NODE, "record_node"),
        (IntersectionAction.PREPARE_TURN, "prepare_turn"),
        (IntersectionAction.TURN_LEFT, "turn_left"),
        (IntersectionAction.TURN_RIGHT, "turn_right"),
        (IntersectionAction.HOLD_POSITION, "hold"),
    ],
)
def test_action_names(action, name):
    assert decision_action_name(action) == name