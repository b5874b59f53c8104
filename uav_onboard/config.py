"""Network and vision configuration loaded from TOML files."""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass, field
from typing import Any, Mapping

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


@dataclass
class NetworkConfig:
    """Where telemetry, commands and video are sent."""

    gcs_ip: str = "127.0.0.1"
    telemetry_port: int = 14550
    command_port: int = 14551
    video_port: int = 5600
    telemetry_interval_ms: int = 1000


@dataclass
class CameraConfig:
    device: int = 0
    width: int = 960
    height: int = 720
    fps: int = 12
    jpeg_quality: int = 45
    sensor_model: str = "imx519"
    codec: str = "mjpeg"
    autofocus_mode: str = "manual"
    autofocus_range: str = "normal"
    autofocus_speed: str = "normal"
    autofocus_window: str = ""
    lens_position: float = 0.67
    exposure: str = "sport"
    shutter_us: int = 0
    gain: float = 0.0
    ev: float = 0.0
    awb: str = "auto"
    awbgains: str = ""
    metering: str = ""
    denoise: str = "cdn_fast"
    sharpness: float = 0.0
    contrast: float = 0.0
    brightness: float = 0.0
    saturation: float = 0.0
    roi: str = ""
    tuning_file: str = ""
    hflip: bool = False
    vflip: bool = False
    rotation: int = 0


@dataclass
class VideoStreamConfig:
    width: int = 640
    height: int = 480
    fps: int = 12
    jpeg_quality: int = 45
    send_fps: int = 5
    chunk_pacing_us: int = 150
    port: int = 5600


@dataclass
class DebugVideoConfig:
    enabled: bool = False
    send_fps: int = 5
    jpeg_quality: int = 40
    chunk_pacing_us: int = 150
    send_width: int = 0
    send_height: int = 0


@dataclass
class ArucoConfig:
    dictionary: str = "DICT_4X4_50"
    marker_size_mm: float = 80.0
    min_marker_perimeter_rate: float = 0.03
    max_marker_perimeter_rate: float = 4.0
    adaptive_thresh_win_size_min: int = 3
    adaptive_thresh_win_size_max: int = 23
    adaptive_thresh_win_size_step: int = 10


@dataclass
class LineConfig:
    enabled: bool = True
    mode: str = "light_on_dark"
    mask_strategy: str = "white_fill"
    offset_normalized: bool = False
    roi_top_ratio: float = 0.08
    lookahead_y_ratio: float = 0.55
    lookahead_band_ratio: float = 0.06
    threshold: int = 0
    local_contrast_blur: int = 31
    local_contrast_threshold: int = 10
    white_v_min: int = 145
    white_s_max: int = 90
    dark_v_max: int = 85
    min_area_px: int = 250
    morph_kernel: int = 5
    morph_open_kernel: int = 1
    morph_close_kernel: int = 7
    morph_dilate_kernel: int = 1
    fill_close_kernel: int = 11
    fill_dilate_kernel: int = 3
    dark_fill_close_kernel: int = 11
    dark_fill_dilate_kernel: int = 3
    line_run_merge_gap_px: int = 16
    max_contour_points: int = 48
    confidence_min: float = 0.25
    min_line_width_px: int = 8
    max_line_width_ratio: float = 0.22
    dark_max_line_width_ratio: float = 0.34
    process_width: int = 480
    max_candidates: int = 8
    filter_enabled: bool = True
    filter_ema_alpha: float = 0.35
    filter_confidence_alpha_min: float = 0.35
    filter_min_confidence: float = 0.25
    filter_max_offset_jump_ratio: float = 0.16
    filter_max_offset_velocity_ratio: float = 0.08
    filter_max_angle_jump_deg: float = 90.0
    filter_hold_frames: int = 3
    filter_reacquire_frames: int = 3
    intersection_threshold: float = 0.8


@dataclass
class IntersectionDecisionConfig:
    enabled: bool = True
    fps_assumption: int = 12
    cruise_window_frames: int = 6
    turn_confirm_frames: int = 8
    cooldown_frames: int = 8
    min_cross_branch_frames: int = 2
    min_t_branch_frames: int = 2
    min_l_branch_frames: int = 3
    min_branch_score: float = 0.72
    high_confidence_score: float = 0.85
    candidate_min_frames: int = 2
    turn_confirm_required: int = 3
    record_node_once_frames: int = 18
    turn_zone_y_min: float = 0.42
    turn_zone_y_max: float = 0.68
    late_zone_y: float = 0.78
    min_prearm_frames: int = 2
    front_missing_frames: int = 2
    node_advance_min_frames: int = 4


@dataclass
class VisionConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    video: VideoStreamConfig = field(default_factory=VideoStreamConfig)
    debug_video: DebugVideoConfig = field(default_factory=DebugVideoConfig)
    aruco: ArucoConfig = field(default_factory=ArucoConfig)
    line: LineConfig = field(default_factory=LineConfig)
    intersection_decision: IntersectionDecisionConfig = field(
        default_factory=IntersectionDecisionConfig
    )


def _config_path(config_dir: str | os.PathLike[str], filename: str) -> str:
    directory = os.fspath(config_dir)
    if not directory:
        return f"config/{filename}"
    if directory.endswith(("/", "\\")):
        return directory + filename
    return f"{directory}/{filename}"


def _read_table(path: str) -> dict[str, Any] | None:
    try:
        with open(path, "rb") as handle:
            return tomllib.load(handle)
    except (OSError, ValueError):
        return None


def _section(table: Mapping[str, Any], name: str) -> Mapping[str, Any] | None:
    if name not in table:
        return None
    value = table[name]
    return value if isinstance(value, Mapping) else {}


def _value_or(section: Mapping[str, Any], key: str, default: Any) -> Any:
    """Return section[key] if it has the same kind as default, else default."""
    if key not in section:
        return default
    value = section[key]
    if isinstance(default, bool):
        return value if isinstance(value, bool) else default
    if isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value if _INT32_MIN <= value <= _INT32_MAX else default
        return default
    if isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return default
    if isinstance(default, str):
        return value if isinstance(value, str) else default
    return default


def _apply(target: Any, section: Mapping[str, Any], keys: tuple[str, ...] | None = None) -> None:
    names = keys if keys is not None else tuple(f.name for f in dataclasses.fields(target))
    for name in names:
        setattr(target, name, _value_or(section, name, getattr(target, name)))


def _port(section: Mapping[str, Any], key: str, default: int) -> int:
    return _value_or(section, key, default) & 0xFFFF


def load_network_config(config_dir: str | os.PathLike[str]) -> NetworkConfig:
    """Load network.toml from config_dir; missing or invalid files give defaults."""
    config = NetworkConfig()
    table = _read_table(_config_path(config_dir, "network.toml"))
    if table is None:
        return config

    gcs = _section(table, "gcs")
    if gcs is not None:
        config.gcs_ip = _value_or(gcs, "ip", config.gcs_ip)
        config.telemetry_port = _port(gcs, "telemetry_port", config.telemetry_port)
        config.command_port = _port(gcs, "command_port", config.command_port)
        config.video_port = _port(gcs, "video_port", config.video_port)

    telemetry = _section(table, "telemetry")
    if telemetry is not None:
        config.telemetry_interval_ms = _value_or(
            telemetry, "send_interval_ms", config.telemetry_interval_ms
        )
    return config


def load_vision_config(config_dir: str | os.PathLike[str]) -> VisionConfig:
    """Load vision.toml from config_dir; missing or invalid files give defaults."""
    config = VisionConfig()
    table = _read_table(_config_path(config_dir, "vision.toml"))
    if table is None:
        return config

    camera = _section(table, "camera")
    if camera is not None:
        _apply(config.camera, camera)
        config.camera.device = _value_or(camera, "index", config.camera.device)

    video = _section(table, "video")
    if video is not None:
        _apply(config.video, video)
        _apply(config.debug_video, video, ("send_fps", "jpeg_quality", "chunk_pacing_us"))

    debug_video = _section(table, "debug_video")
    if debug_video is not None:
        _apply(config.debug_video, debug_video)

    aruco = _section(table, "aruco")
    if aruco is not None:
        _apply(config.aruco, aruco)

    line = _section(table, "line")
    if line is not None:
        _apply(config.line, line)

    decision = _section(table, "intersection_decision")
    if decision is not None:
        _apply(config.intersection_decision, decision)

    return config