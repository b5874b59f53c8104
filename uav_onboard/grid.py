"""Local grid coordinates built from accepted intersection events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from uav_onboard.config import IntersectionDecisionConfig
from uav_onboard.decision import IntersectionDecision, IntersectionType

_FRONT_BIT = 1 << 0
_RIGHT_BIT = 1 << 1
_BACK_BIT = 1 << 2
_LEFT_BIT = 1 << 3


class GridHeading(Enum):
    NORTH = "north"
    EAST = "east"
    SOUTH = "south"
    WEST = "west"
    UNKNOWN = "unknown"


_CLOCKWISE = (GridHeading.NORTH, GridHeading.EAST, GridHeading.SOUTH, GridHeading.WEST)

_STEPS = {
    GridHeading.NORTH: (0, -1),
    GridHeading.EAST: (1, 0),
    GridHeading.SOUTH: (0, 1),
    GridHeading.WEST: (-1, 0),
    GridHeading.UNKNOWN: (0, 0),
}


def _rotate(heading: GridHeading, quarter_turns: int) -> GridHeading:
    if heading is GridHeading.UNKNOWN:
        return heading
    return _CLOCKWISE[(_CLOCKWISE.index(heading) + quarter_turns) % len(_CLOCKWISE)]


def _turn_right(heading: GridHeading) -> GridHeading:
    return _rotate(heading, 1)


def _turn_back(heading: GridHeading) -> GridHeading:
    return _rotate(heading, 2)


def _turn_left(heading: GridHeading) -> GridHeading:
    return _rotate(heading, 3)


def _heading_bit(heading: GridHeading) -> int:
    if heading is GridHeading.UNKNOWN:
        return 0
    return 1 << _CLOCKWISE.index(heading)


@dataclass(frozen=True)
class GridCoord:
    x: int = 0
    y: int = 0

    def advanced(self, heading: GridHeading) -> GridCoord:
        """Return the neighbouring coordinate one step along heading."""
        dx, dy = _STEPS[heading]
        return GridCoord(self.x + dx, self.y + dy)


@dataclass
class GridNodeEvent:
    valid: bool = False
    node_id: int = 0
    local_coord: GridCoord = field(default_factory=GridCoord)
    topology: IntersectionType = IntersectionType.UNKNOWN
    arrival_heading: GridHeading = GridHeading.UNKNOWN
    camera_branch_mask: int = 0
    grid_branch_mask: int = 0
    first_node: bool = False
    origin_local_only: bool = True


class GridCoordinateTracker:
    """Turns node events into local grid coordinates and picks the next heading."""

    def __init__(self, config: IntersectionDecisionConfig) -> None:
        self._config = config
        self._nodes: dict[GridCoord, GridNodeEvent] = {}
        self.reset_local_origin()

    def update(
        self, decision: IntersectionDecision, frame_seq: int, timestamp_ms: int
    ) -> GridNodeEvent:
        """Record a node for an event-ready decision; return an invalid event otherwise."""
        event = GridNodeEvent()
        if not decision.event_ready:
            return event
        min_gap = max(1, self._config.node_advance_min_frames)
        if (
            self._last_node_frame_seq != 0
            and frame_seq > self._last_node_frame_seq
            and frame_seq - self._last_node_frame_seq < min_gap
        ):
            return event

        if not self._has_origin:
            self._has_origin = True
            if self._heading is GridHeading.UNKNOWN:
                # Without an external heading source, the first arrival counts as north.
                self._heading = GridHeading.NORTH
                self._using_default_start_heading = True
            self._coord = GridCoord()
            event.first_node = True
        elif self._heading is not GridHeading.UNKNOWN:
            self._coord = self._coord.advanced(self._heading)

        event.valid = True
        event.node_id = self._next_node_id
        self._next_node_id += 1
        event.local_coord = self._coord
        event.topology = decision.accepted_type
        event.arrival_heading = self._heading
        event.camera_branch_mask = decision.accepted_branch_mask
        event.grid_branch_mask = rotate_camera_branch_mask_to_grid(
            decision.accepted_branch_mask, self._heading
        )
        event.origin_local_only = True

        self._nodes[event.local_coord] = event
        self._last_node_frame_seq = frame_seq
        self._heading = self._choose_next_heading(decision)
        return event

    def notify_turn_completed(self, new_heading: GridHeading) -> None:
        self._heading = new_heading
        self._using_default_start_heading = False

    def set_heading(self, heading: GridHeading) -> None:
        self._heading = heading
        self._using_default_start_heading = False

    def reset_local_origin(self) -> None:
        """Forget every node and start again from an unknown heading."""
        self._has_origin = False
        self._coord = GridCoord()
        self._heading = GridHeading.UNKNOWN
        self._using_default_start_heading = False
        self._pending_second_turn = False
        self._pending_turn_right = True
        self._next_node_id = 1
        self._last_node_frame_seq = 0
        self._nodes.clear()

    def current_heading(self) -> GridHeading:
        return self._heading

    def current_coord(self) -> GridCoord:
        return self._coord

    def nodes(self) -> dict[GridCoord, GridNodeEvent]:
        """Recorded nodes ordered by row (y), then column (x)."""
        return dict(sorted(self._nodes.items(), key=lambda item: (item[0].y, item[0].x)))

    def _choose_next_heading(self, decision: IntersectionDecision) -> GridHeading:
        heading = self._heading
        if heading is GridHeading.UNKNOWN:
            return heading

        if self._pending_second_turn:
            self._pending_second_turn = False
            return _turn_right(heading) if self._pending_turn_right else _turn_left(heading)

        mask = decision.accepted_branch_mask
        front_available = bool(mask & _FRONT_BIT)
        right_available = bool(mask & _RIGHT_BIT)
        left_available = bool(mask & _LEFT_BIT)

        # On the first node, take the visible side branch to start along the first row.
        if self._using_default_start_heading and len(self._nodes) == 1:
            if right_available:
                self._using_default_start_heading = False
                return _turn_right(heading)
            if left_available:
                self._using_default_start_heading = False
                return _turn_left(heading)

        if front_available:
            return heading
        if right_available:
            self._pending_second_turn = True
            self._pending_turn_right = True
            return _turn_right(heading)
        if left_available:
            self._pending_second_turn = True
            self._pending_turn_right = False
            return _turn_left(heading)
        if mask & _BACK_BIT:
            return _turn_back(heading)
        return heading


def grid_heading_name(heading: GridHeading) -> str:
    return heading.value


def rotate_camera_branch_mask_to_grid(camera_mask: int, heading: GridHeading) -> int:
    """Map a front/right/back/left camera mask onto north/east/south/west bits."""
    if heading is GridHeading.UNKNOWN:
        return camera_mask
    grid_mask = 0
    for bit, quarter_turns in ((_FRONT_BIT, 0), (_RIGHT_BIT, 1), (_BACK_BIT, 2), (_LEFT_BIT, 3)):
        if camera_mask & bit:
            grid_mask |= _heading_bit(_rotate(heading, quarter_turns))
    return grid_mask