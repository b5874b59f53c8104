"""Windowed intersection classification and turn/record decisions."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from uav_onboard.config import IntersectionDecisionConfig

_BRANCH_COUNT = 4
_FRONT_BIT = 1 << 0
_RIGHT_BIT = 1 << 1
_BACK_BIT = 1 << 2
_LEFT_BIT = 1 << 3


@dataclass
class Point2f:
    x: float = 0.0
    y: float = 0.0


class IntersectionType(Enum):
    NONE = "none"
    UNKNOWN = "unknown"
    STRAIGHT = "straight"
    L = "L"
    T = "T"
    CROSS = "cross"


class BranchDirection(Enum):
    FRONT = 0
    RIGHT = 1
    BACK = 2
    LEFT = 3


def _default_branches() -> list[BranchObservation]:
    return [BranchObservation(direction=direction) for direction in BranchDirection]


@dataclass
class BranchObservation:
    """One branch leaving an observed intersection, relative to the camera."""

    direction: BranchDirection = BranchDirection.FRONT
    present: bool = False
    score: float = 0.0
    endpoint_px: Point2f = field(default_factory=Point2f)
    angle_deg: float = 0.0


@dataclass
class IntersectionDetection:
    """A (possibly stabilised) intersection observation for one frame."""

    valid: bool = False
    intersection_detected: bool = False
    type: IntersectionType = IntersectionType.NONE
    raw_type: IntersectionType = IntersectionType.NONE
    stable: bool = False
    held: bool = False
    center_px: Point2f = field(default_factory=Point2f)
    raw_center_px: Point2f = field(default_factory=Point2f)
    score: float = 0.0
    raw_score: float = 0.0
    branch_mask: int = 0
    branch_count: int = 0
    stable_frames: int = 0
    radius_px: float = 0.0
    selected_mask_index: int = -1
    branches: list[BranchObservation] = field(default_factory=_default_branches)


class IntersectionDecisionState(Enum):
    CRUISE = "cruise"
    CANDIDATE = "candidate"
    NODE_RECORD = "node_record"
    TURN_CONFIRM = "turn_confirm"
    TURN_READY = "turn_ready"
    COOLDOWN = "cooldown"


class IntersectionAction(Enum):
    NONE = "none"
    CONTINUE_STRAIGHT = "continue"
    RECORD_NODE = "record_node"
    PREPARE_TURN = "prepare_turn"
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"
    HOLD_POSITION = "hold"


@dataclass
class BranchEvidence:
    present_frames: int = 0
    max_score: float = 0.0
    sum_score: float = 0.0
    average_score: float = 0.0


def _empty_evidence() -> list[BranchEvidence]:
    return [BranchEvidence() for _ in range(_BRANCH_COUNT)]


@dataclass
class IntersectionDecisionSample:
    frame_seq: int = 0
    timestamp_ms: int = 0
    type: IntersectionType = IntersectionType.NONE
    raw_type: IntersectionType = IntersectionType.NONE
    valid: bool = False
    stable: bool = False
    held: bool = False
    score: float = 0.0
    branch_mask: int = 0
    branch_scores: list[float] = field(default_factory=lambda: [0.0] * _BRANCH_COUNT)
    branch_present: list[bool] = field(default_factory=lambda: [False] * _BRANCH_COUNT)
    center_px: Point2f = field(default_factory=Point2f)


@dataclass
class IntersectionDecision:
    state: IntersectionDecisionState = IntersectionDecisionState.CRUISE
    action: IntersectionAction = IntersectionAction.CONTINUE_STRAIGHT
    accepted_type: IntersectionType = IntersectionType.NONE
    best_observed_type: IntersectionType = IntersectionType.NONE
    event_ready: bool = False
    turn_candidate: bool = False
    required_turn: bool = False
    front_available: bool = False
    node_recorded: bool = False
    cooldown_active: bool = False
    accepted_branch_mask: int = 0
    window_frames: int = 0
    age_ms: int = 0
    confidence: float = 0.0
    center_px: Point2f = field(default_factory=Point2f)
    center_y_norm: float = 0.0
    approach_phase: str = "far"
    overshoot_risk: bool = False
    too_late_to_turn: bool = False
    branch_evidence: list[BranchEvidence] = field(default_factory=_empty_evidence)


@dataclass
class _ClassifiedWindow:
    type: IntersectionType = IntersectionType.NONE
    best_observed_type: IntersectionType = IntersectionType.NONE
    branch_mask: int = 0
    confidence: float = 0.0


_TYPE_PRIORITY = {
    IntersectionType.CROSS: 5,
    IntersectionType.T: 4,
    IntersectionType.L: 3,
    IntersectionType.STRAIGHT: 2,
    IntersectionType.UNKNOWN: 1,
    IntersectionType.NONE: 0,
}

_NODE_TYPES = frozenset({IntersectionType.CROSS, IntersectionType.T, IntersectionType.L})

_CROSS_MASK = _FRONT_BIT | _RIGHT_BIT | _BACK_BIT | _LEFT_BIT
_T_MASKS = (
    _FRONT_BIT | _RIGHT_BIT | _BACK_BIT,
    _RIGHT_BIT | _BACK_BIT | _LEFT_BIT,
    _BACK_BIT | _LEFT_BIT | _FRONT_BIT,
    _LEFT_BIT | _FRONT_BIT | _RIGHT_BIT,
)
_L_MASKS = (
    _FRONT_BIT | _RIGHT_BIT,
    _RIGHT_BIT | _BACK_BIT,
    _BACK_BIT | _LEFT_BIT,
    _LEFT_BIT | _FRONT_BIT,
)
_STRAIGHT_MASKS = (_FRONT_BIT | _BACK_BIT, _RIGHT_BIT | _LEFT_BIT, 0, 0)


def _mask_branches(evidence: list[BranchEvidence], mask: int) -> list[BranchEvidence]:
    return [branch for index, branch in enumerate(evidence) if mask & (1 << index)]


def _mask_confidence(evidence: list[BranchEvidence], mask: int) -> float:
    selected = _mask_branches(evidence, mask)
    if not selected:
        return 0.0
    return sum(branch.average_score for branch in selected) / len(selected)


def _mask_meets(evidence: list[BranchEvidence], mask: int, min_frames: int) -> bool:
    return all(branch.present_frames >= min_frames for branch in _mask_branches(evidence, mask))


def _mask_max_meets(evidence: list[BranchEvidence], mask: int, min_score: float) -> bool:
    return all(branch.max_score >= min_score for branch in _mask_branches(evidence, mask))


def _best_mask(evidence: list[BranchEvidence], masks: tuple[int, ...], min_frames: int) -> int:
    output = 0
    best_score = float("-inf")
    for mask in masks:
        if not _mask_meets(evidence, mask, min_frames):
            continue
        score = _mask_confidence(evidence, mask)
        if score > best_score:
            best_score = score
            output = mask
    return output


class IntersectionDecisionEngine:
    """Accumulates intersection observations over a short window and decides."""

    def __init__(self, config: IntersectionDecisionConfig) -> None:
        self._config = config
        window = max(1, config.cruise_window_frames, config.turn_confirm_frames)
        self._samples: deque[IntersectionDecisionSample] = deque(maxlen=window)
        self._cooldown_remaining = 0
        self._record_lockout_remaining = 0

    def _make_sample(
        self, intersection: IntersectionDetection, frame_seq: int, timestamp_ms: int
    ) -> IntersectionDecisionSample:
        valid = intersection.valid and intersection.type != IntersectionType.NONE
        sample = IntersectionDecisionSample(
            frame_seq=frame_seq,
            timestamp_ms=timestamp_ms,
            type=intersection.type,
            raw_type=intersection.raw_type,
            valid=valid,
            stable=intersection.stable,
            held=intersection.held,
            score=intersection.score,
            center_px=Point2f(intersection.center_px.x, intersection.center_px.y),
        )
        for branch in intersection.branches:
            index = branch.direction.value
            sample.branch_scores[index] = branch.score
            present = valid and branch.score >= self._config.min_branch_score
            sample.branch_present[index] = present
            if present:
                sample.branch_mask |= 1 << index
        return sample

    def _compute_branch_evidence(self) -> list[BranchEvidence]:
        evidence = _empty_evidence()
        if not self._samples:
            return evidence
        for sample in self._samples:
            if not sample.valid:
                continue
            for branch, score, present in zip(
                evidence, sample.branch_scores, sample.branch_present
            ):
                branch.max_score = max(branch.max_score, score)
                branch.sum_score += score
                if present:
                    branch.present_frames += 1
        denominator = float(max(1, len(self._samples)))
        for branch in evidence:
            branch.average_score = branch.sum_score / denominator
        return evidence

    def _classify_window(self, evidence: list[BranchEvidence]) -> _ClassifiedWindow:
        config = self._config
        output = _ClassifiedWindow()
        for sample in self._samples:
            if sample.valid and _TYPE_PRIORITY[sample.type] > _TYPE_PRIORITY[output.best_observed_type]:
                output.best_observed_type = sample.type

        def accept(kind: IntersectionType, mask: int) -> _ClassifiedWindow:
            output.type = kind
            output.branch_mask = mask
            output.confidence = _mask_confidence(evidence, mask)
            return output

        if _mask_meets(evidence, _CROSS_MASK, config.min_cross_branch_frames) and _mask_max_meets(
            evidence, _CROSS_MASK, config.high_confidence_score
        ):
            return accept(IntersectionType.CROSS, _CROSS_MASK)

        for kind, masks, min_frames in (
            (IntersectionType.T, _T_MASKS, config.min_t_branch_frames),
            (IntersectionType.L, _L_MASKS, config.min_l_branch_frames),
            (IntersectionType.STRAIGHT, _STRAIGHT_MASKS, config.candidate_min_frames),
        ):
            mask = _best_mask(evidence, masks, min_frames)
            if mask:
                return accept(kind, mask)

        output.type = (
            IntersectionType.NONE
            if output.best_observed_type == IntersectionType.NONE
            else IntersectionType.UNKNOWN
        )
        output.confidence = 0.0
        return output

    def _front_missing_recently(self) -> bool:
        missing = 0
        for sample in reversed(self._samples):
            if sample.valid and sample.branch_present[0]:
                break
            missing += 1
            if missing >= self._config.front_missing_frames:
                return True
        return False

    def _approach_phase(self, center_y_norm: float) -> str:
        config = self._config
        if center_y_norm < 0.25:
            return "far"
        if center_y_norm < config.turn_zone_y_min:
            return "approaching"
        if center_y_norm <= config.turn_zone_y_max:
            return "turn_zone"
        if center_y_norm < config.late_zone_y:
            return "late"
        return "passed"

    def update(
        self,
        intersection: IntersectionDetection,
        frame_width: int,
        frame_height: int,
        frame_seq: int,
        timestamp_ms: int,
        turn_expected: bool,
    ) -> IntersectionDecision:
        """Add one frame's observation and return the current decision."""
        config = self._config
        decision = IntersectionDecision()
        if not config.enabled:
            return decision

        if self._record_lockout_remaining > 0:
            self._record_lockout_remaining -= 1

        if self._cooldown_remaining > 0:
            self._cooldown_remaining -= 1
            decision.state = IntersectionDecisionState.COOLDOWN
            decision.action = IntersectionAction.CONTINUE_STRAIGHT
            decision.cooldown_active = True
            return decision

        self._samples.append(self._make_sample(intersection, frame_seq, timestamp_ms))

        evidence = self._compute_branch_evidence()
        classified = self._classify_window(evidence)

        decision.branch_evidence = evidence
        decision.accepted_type = classified.type
        decision.best_observed_type = classified.best_observed_type
        decision.accepted_branch_mask = classified.branch_mask
        decision.confidence = classified.confidence
        decision.window_frames = len(self._samples)
        if len(self._samples) >= 2:
            decision.age_ms = int(self._samples[-1].timestamp_ms - self._samples[0].timestamp_ms)
        latest = self._samples[-1].center_px
        decision.center_px = Point2f(latest.x, latest.y)
        if frame_width > 0 and frame_height > 0:
            decision.center_y_norm = min(max(decision.center_px.y / frame_height, 0.0), 1.0)
        decision.approach_phase = self._approach_phase(decision.center_y_norm)

        decision.front_available = evidence[0].present_frames >= config.candidate_min_frames
        side_available = (
            evidence[1].present_frames >= config.min_prearm_frames
            or evidence[3].present_frames >= config.min_prearm_frames
        )
        front_missing = self._front_missing_recently()
        decision.required_turn = side_available and (turn_expected or front_missing)
        decision.turn_candidate = decision.required_turn

        y = decision.center_y_norm
        in_turn_zone = config.turn_zone_y_min <= y <= config.turn_zone_y_max
        too_late = y >= config.late_zone_y or y > config.turn_zone_y_max
        decision.too_late_to_turn = decision.required_turn and y >= config.late_zone_y
        decision.overshoot_risk = decision.required_turn and too_late and not in_turn_zone

        if decision.accepted_type in _NODE_TYPES and self._record_lockout_remaining == 0:
            decision.event_ready = True
            decision.node_recorded = True
            self._record_lockout_remaining = max(1, config.record_node_once_frames)

        if decision.required_turn:
            if in_turn_zone:
                decision.state = IntersectionDecisionState.TURN_READY
                decision.action = IntersectionAction.HOLD_POSITION
            else:
                decision.state = IntersectionDecisionState.TURN_CONFIRM
                decision.action = IntersectionAction.PREPARE_TURN
        elif decision.event_ready:
            decision.state = IntersectionDecisionState.NODE_RECORD
            decision.action = IntersectionAction.CONTINUE_STRAIGHT
        elif classified.type not in (IntersectionType.NONE, IntersectionType.UNKNOWN):
            decision.state = IntersectionDecisionState.CANDIDATE
            decision.action = IntersectionAction.CONTINUE_STRAIGHT
        else:
            decision.state = IntersectionDecisionState.CRUISE
            decision.action = IntersectionAction.CONTINUE_STRAIGHT

        if decision.overshoot_risk and decision.state == IntersectionDecisionState.TURN_READY:
            decision.state = IntersectionDecisionState.TURN_CONFIRM
            decision.action = IntersectionAction.PREPARE_TURN
        return decision

    def reset(self) -> None:
        """Forget the window, the cooldown and the record lockout."""
        self._samples.clear()
        self._cooldown_remaining = 0
        self._record_lockout_remaining = 0

    def start_cooldown(self) -> None:
        """Clear the window and ignore the next cooldown_frames frames."""
        self._samples.clear()
        self._cooldown_remaining = max(0, self._config.cooldown_frames)


def decision_state_name(state: IntersectionDecisionState) -> str:
    return state.value


def decision_action_name(action: IntersectionAction) -> str:
    return action.value