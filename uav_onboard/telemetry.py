"""Telemetry message model and its JSON wire form."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


def _four_points() -> list[Point]:
    return [Point() for _ in range(4)]


@dataclass
class MarkerTelemetry:
    id: int = -1
    center_px: Point = field(default_factory=Point)
    corners_px: list[Point] = field(default_factory=_four_points)
    orientation_deg: float = 0.0


@dataclass
class LineTelemetry:
    detected: bool = False
    raw_detected: bool = False
    filtered: bool = False
    held: bool = False
    rejected_jump: bool = False
    tracking_point_px: Point = field(default_factory=Point)
    raw_tracking_point_px: Point = field(default_factory=Point)
    centroid_px: Point = field(default_factory=Point)
    center_offset_px: float = 0.0
    raw_center_offset_px: float = 0.0
    angle_deg: float = 0.0
    raw_angle_deg: float = 0.0
    confidence: float = 0.0
    contour_px: list[Point] = field(default_factory=list)


@dataclass
class BranchTelemetry:
    direction: str = ""
    present: bool = False
    score: float = 0.0
    endpoint_px: Point = field(default_factory=Point)
    angle_deg: float = 0.0


@dataclass
class IntersectionTelemetry:
    valid: bool = False
    detected: bool = False
    type: str = "none"
    raw_type: str = "none"
    stable: bool = False
    held: bool = False
    center_px: Point = field(default_factory=Point)
    raw_center_px: Point = field(default_factory=Point)
    score: float = 0.0
    raw_score: float = 0.0
    branch_mask: int = 0
    branch_count: int = 0
    stable_frames: int = 0
    radius_px: float = 0.0
    selected_mask_index: int = -1
    branches: list[BranchTelemetry] = field(default_factory=list)


@dataclass
class BranchEvidenceTelemetry:
    direction: str = ""
    present_frames: int = 0
    max_score: float = 0.0
    average_score: float = 0.0


@dataclass
class GridNodeTelemetry:
    valid: bool = False
    id: int = 0
    x: int = 0
    y: int = 0
    topology: str = "unknown"
    arrival_heading: str = "unknown"
    camera_branch_mask: int = 0
    grid_branch_mask: int = 0
    first_node: bool = False
    origin_local_only: bool = True


@dataclass
class IntersectionDecisionTelemetry:
    state: str = "cruise"
    action: str = "continue"
    accepted_type: str = "none"
    best_observed_type: str = "none"
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
    center_px: Point = field(default_factory=Point)
    center_y_norm: float = 0.0
    approach_phase: str = "far"
    overshoot_risk: bool = False
    too_late_to_turn: bool = False
    branches: list[BranchEvidenceTelemetry] = field(default_factory=list)
    node: GridNodeTelemetry = field(default_factory=GridNodeTelemetry)


@dataclass
class CameraTelemetry:
    status: str = "not_checked"
    sensor_model: str = ""
    camera_index: int = 0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    configured_fps: float = 0.0
    measured_capture_fps: float = 0.0
    frame_seq: int = 0
    autofocus_mode: str = ""
    lens_position: float = 0.0
    exposure_mode: str = ""
    shutter_us: int = 0
    gain: float = 0.0
    awb: str = ""


@dataclass
class VisionTelemetry:
    line_detected: bool = False
    line_offset: float = 0.0
    line_angle: float = 0.0
    line: LineTelemetry = field(default_factory=LineTelemetry)
    intersection_detected: bool = False
    intersection_score: float = 0.0
    intersection: IntersectionTelemetry = field(default_factory=IntersectionTelemetry)
    intersection_decision: IntersectionDecisionTelemetry = field(
        default_factory=IntersectionDecisionTelemetry
    )
    grid_node: GridNodeTelemetry = field(default_factory=GridNodeTelemetry)
    marker_detected: bool = False
    marker_id: int = -1
    markers: list[MarkerTelemetry] = field(default_factory=list)


@dataclass
class GridTelemetry:
    row: int = -1
    col: int = -1
    heading_deg: float = 0.0


@dataclass
class DebugTelemetry:
    processing_latency_ms: float = 0.0
    read_frame_ms: float = 0.0
    jpeg_decode_ms: float = 0.0
    aruco_latency_ms: float = 0.0
    line_latency_ms: float = 0.0
    intersection_latency_ms: float = 0.0
    intersection_decision_latency_ms: float = 0.0
    telemetry_build_ms: float = 0.0
    telemetry_send_ms: float = 0.0
    video_submit_ms: float = 0.0
    video_send_ms: float = 0.0
    capture_fps: float = 0.0
    processing_fps: float = 0.0
    debug_video_send_fps: float = 0.0
    video_chunk_pacing_us: int = 0
    cpu_temp_c: float = 0.0
    telemetry_bytes: int = 0
    video_jpeg_bytes: int = 0
    video_sent_frames: int = 0
    video_dropped_frames: int = 0
    video_skipped_frames: int = 0
    video_chunks_sent: int = 0
    video_send_failures: int = 0
    video_chunk_count: int = 0
    line_mask_count: int = 0
    line_contours_found: int = 0
    line_candidates_evaluated: int = 0
    line_roi_pixels: int = 0
    line_selected_contour_points: int = 0


@dataclass
class SystemTelemetry:
    board_model: str = ""
    os_release: str = ""
    uptime_s: float = 0.0
    cpu_temp_c: float = 0.0
    throttled_raw: str = ""
    cpu_load_1m: float = 0.0
    mem_available_kb: int = 0
    wifi_signal_dbm: float = 0.0
    wifi_tx_bitrate_mbps: float = 0.0


@dataclass
class BringupTelemetry:
    seq: int = 0
    timestamp_ms: int = 0
    system: SystemTelemetry = field(default_factory=SystemTelemetry)
    camera: CameraTelemetry = field(default_factory=CameraTelemetry)
    vision: VisionTelemetry = field(default_factory=VisionTelemetry)
    grid: GridTelemetry = field(default_factory=GridTelemetry)
    debug: DebugTelemetry = field(default_factory=DebugTelemetry)
    note: str = ""


def _point(point: Point) -> dict[str, float]:
    return {"x": float(point.x), "y": float(point.y)}


def _node(node: GridNodeTelemetry) -> dict[str, Any]:
    return {
        "valid": node.valid,
        "id": int(node.id),
        "local_coord": {"x": int(node.x), "y": int(node.y)},
        "topology": node.topology,
        "arrival_heading": node.arrival_heading,
        "camera_branch_mask": int(node.camera_branch_mask),
        "grid_branch_mask": int(node.grid_branch_mask),
        "first_node": node.first_node,
        "origin_local_only": node.origin_local_only,
    }


def _line(line: LineTelemetry) -> dict[str, Any]:
    return {
        "detected": line.detected,
        "raw_detected": line.raw_detected,
        "filtered": line.filtered,
        "held": line.held,
        "rejected_jump": line.rejected_jump,
        "tracking_point_px": _point(line.tracking_point_px),
        "raw_tracking_point_px": _point(line.raw_tracking_point_px),
        "centroid_px": _point(line.centroid_px),
        "center_offset_px": float(line.center_offset_px),
        "raw_center_offset_px": float(line.raw_center_offset_px),
        "angle_deg": float(line.angle_deg),
        "raw_angle_deg": float(line.raw_angle_deg),
        "confidence": float(line.confidence),
        "contour_px": [_point(p) for p in line.contour_px],
    }


def _intersection(ix: IntersectionTelemetry) -> dict[str, Any]:
    return {
        "valid": ix.valid,
        "detected": ix.detected,
        "type": ix.type,
        "raw_type": ix.raw_type,
        "stable": ix.stable,
        "held": ix.held,
        "center_px": _point(ix.center_px),
        "raw_center_px": _point(ix.raw_center_px),
        "score": float(ix.score),
        "raw_score": float(ix.raw_score),
        "branch_mask": int(ix.branch_mask),
        "branch_count": int(ix.branch_count),
        "stable_frames": int(ix.stable_frames),
        "radius_px": float(ix.radius_px),
        "selected_mask_index": int(ix.selected_mask_index),
        "branches": [
            {
                "direction": branch.direction,
                "present": branch.present,
                "score": float(branch.score),
                "endpoint_px": _point(branch.endpoint_px),
                "angle_deg": float(branch.angle_deg),
            }
            for branch in ix.branches
        ],
    }


def _decision(dec: IntersectionDecisionTelemetry) -> dict[str, Any]:
    return {
        "state": dec.state,
        "action": dec.action,
        "accepted_type": dec.accepted_type,
        "best_observed_type": dec.best_observed_type,
        "event_ready": dec.event_ready,
        "turn_candidate": dec.turn_candidate,
        "required_turn": dec.required_turn,
        "front_available": dec.front_available,
        "node_recorded": dec.node_recorded,
        "cooldown_active": dec.cooldown_active,
        "accepted_branch_mask": int(dec.accepted_branch_mask),
        "window_frames": int(dec.window_frames),
        "age_ms": int(dec.age_ms),
        "confidence": float(dec.confidence),
        "center_px": _point(dec.center_px),
        "center_y_norm": float(dec.center_y_norm),
        "approach_phase": dec.approach_phase,
        "overshoot_risk": dec.overshoot_risk,
        "too_late_to_turn": dec.too_late_to_turn,
        "branches": [
            {
                "direction": branch.direction,
                "present_frames": int(branch.present_frames),
                "max_score": float(branch.max_score),
                "average_score": float(branch.average_score),
            }
            for branch in dec.branches
        ],
        "node": _node(dec.node),
    }


def _marker(marker: MarkerTelemetry) -> dict[str, Any]:
    return {
        "id": int(marker.id),
        "center_px": _point(marker.center_px),
        "corners_px": [_point(corner) for corner in marker.corners_px],
        "orientation_deg": float(marker.orientation_deg),
    }


def build_telemetry_json(telemetry: BringupTelemetry) -> str:
    """Serialise a telemetry snapshot to compact JSON with sorted keys."""
    system = telemetry.system
    camera = telemetry.camera
    vision = telemetry.vision
    grid = telemetry.grid
    debug = telemetry.debug

    message: dict[str, Any] = {
        "protocol_version": 1,
        "type": "TELEMETRY",
        "seq": int(telemetry.seq),
        "timestamp_ms": int(telemetry.timestamp_ms),
        "mission": {"state": "IDLE", "elapsed_ms": 0},
        "system": {
            "board_model": system.board_model,
            "os_release": system.os_release,
            "uptime_s": float(system.uptime_s),
            "cpu_temp_c": float(system.cpu_temp_c),
            "throttled_raw": system.throttled_raw,
            "cpu_load_1m": float(system.cpu_load_1m),
            "mem_available_kb": int(system.mem_available_kb),
            "wifi_signal_dbm": float(system.wifi_signal_dbm),
            "wifi_tx_bitrate_mbps": float(system.wifi_tx_bitrate_mbps),
        },
        "camera": {
            "status": camera.status,
            "sensor_model": camera.sensor_model,
            "camera_index": int(camera.camera_index),
            "width": int(camera.width),
            "height": int(camera.height),
            "fps": float(camera.fps),
            "configured_fps": float(camera.configured_fps),
            "measured_capture_fps": float(camera.measured_capture_fps),
            "frame_seq": int(camera.frame_seq),
            "autofocus_mode": camera.autofocus_mode,
            "lens_position": float(camera.lens_position),
            "exposure_mode": camera.exposure_mode,
            "shutter_us": int(camera.shutter_us),
            "gain": float(camera.gain),
            "awb": camera.awb,
        },
        "vision": {
            "line_detected": vision.line_detected,
            "line_offset": float(vision.line_offset),
            "line_angle": float(vision.line_angle),
            "line": _line(vision.line),
            "intersection_detected": vision.intersection_detected,
            "intersection_score": float(vision.intersection_score),
            "intersection": _intersection(vision.intersection),
            "intersection_decision": _decision(vision.intersection_decision),
            "grid_node": _node(vision.grid_node),
            "marker_detected": vision.marker_detected,
            "marker_id": int(vision.marker_id),
            "marker_count": len(vision.markers),
            "markers": [_marker(marker) for marker in vision.markers],
        },
        "grid": {
            "row": int(grid.row),
            "col": int(grid.col),
            "heading_deg": float(grid.heading_deg),
        },
        "debug": {
            "processing_latency_ms": float(debug.processing_latency_ms),
            "read_frame_ms": float(debug.read_frame_ms),
            "jpeg_decode_ms": float(debug.jpeg_decode_ms),
            "aruco_latency_ms": float(debug.aruco_latency_ms),
            "line_latency_ms": float(debug.line_latency_ms),
            "intersection_latency_ms": float(debug.intersection_latency_ms),
            "intersection_decision_latency_ms": float(debug.intersection_decision_latency_ms),
            "telemetry_build_ms": float(debug.telemetry_build_ms),
            "telemetry_send_ms": float(debug.telemetry_send_ms),
            "video_submit_ms": float(debug.video_submit_ms),
            "video_send_ms": float(debug.video_send_ms),
            "capture_fps": float(debug.capture_fps),
            "processing_fps": float(debug.processing_fps),
            "debug_video_send_fps": float(debug.debug_video_send_fps),
            "video_chunk_pacing_us": int(debug.video_chunk_pacing_us),
            "cpu_temp_c": float(debug.cpu_temp_c),
            "telemetry_bytes": int(debug.telemetry_bytes),
            "video_jpeg_bytes": int(debug.video_jpeg_bytes),
            "video_sent_frames": int(debug.video_sent_frames),
            "video_dropped_frames": int(debug.video_dropped_frames),
            "video_skipped_frames": int(debug.video_skipped_frames),
            "video_chunks_sent": int(debug.video_chunks_sent),
            "video_send_failures": int(debug.video_send_failures),
            "video_chunk_count": int(debug.video_chunk_count),
            "line_mask_count": int(debug.line_mask_count),
            "line_contours_found": int(debug.line_contours_found),
            "line_candidates_evaluated": int(debug.line_candidates_evaluated),
            "line_roi_pixels": int(debug.line_roi_pixels),
            "line_selected_contour_points": int(debug.line_selected_contour_points),
            "note": telemetry.note,
        },
    }
    return json.dumps(message, separators=(",", ":"), sort_keys=True, ensure_ascii=False)