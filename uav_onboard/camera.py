"""MJPEG capture from the rpicam-vid command-line tool."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass

from uav_onboard.clock import unix_timestamp_ms
from uav_onboard.streamer import CameraFrame

STDERR_LOG = "/tmp/astroquad_rpicam_vid.log"

_READ_CHUNK = 4096
_MAX_BUFFER = 4 * 1024 * 1024
_SOI = b"\xff\xd8"
_EOI = b"\xff\xd9"
_CLOSE_TIMEOUT_S = 2.0


class CameraError(OSError):
    """Raised when the camera process cannot be started or read."""


@dataclass
class RpicamOptions:
    camera_index: int = 0
    width: int = 640
    height: int = 480
    fps: int = 15
    jpeg_quality: int = 50
    codec: str = "mjpeg"
    autofocus_mode: str = ""
    autofocus_range: str = ""
    autofocus_speed: str = ""
    autofocus_window: str = ""
    lens_position: float = -1.0
    exposure: str = ""
    shutter_us: int = 0
    gain: float = 0.0
    ev: float = 0.0
    awb: str = ""
    awbgains: str = ""
    metering: str = ""
    denoise: str = ""
    sharpness: float = 0.0
    contrast: float = 0.0
    brightness: float = 0.0
    saturation: float = 0.0
    roi: str = ""
    tuning_file: str = ""
    hflip: bool = False
    vflip: bool = False
    rotation: int = 0


def shell_quote(value: str) -> str:
    """Quote value for a POSIX shell using single quotes."""
    return "'" + value.replace("'", "'\\''") + "'"


def _number(value: float) -> str:
    return f"{value:g}"


def build_command(options: RpicamOptions) -> str:
    """Build the shell command line that streams MJPEG to standard output."""
    parts = [
        "rpicam-vid",
        "--verbose 0",
        "-t 0",
        "--nopreview",
        f"--camera {options.camera_index}",
        f"--codec {options.codec or 'mjpeg'}",
        f"--quality {options.jpeg_quality}",
        f"--width {options.width}",
        f"--height {options.height}",
        f"--framerate {options.fps}",
        "-o -",
    ]

    def add_string(name: str, value: str) -> None:
        if value:
            parts.append(f"{name} {shell_quote(value)}")

    def add_number(name: str, value: float) -> None:
        if value != 0.0:
            parts.append(f"{name} {_number(value)}")

    add_string("--autofocus-mode", options.autofocus_mode)
    add_string("--autofocus-range", options.autofocus_range)
    add_string("--autofocus-speed", options.autofocus_speed)
    add_string("--autofocus-window", options.autofocus_window)
    if options.lens_position >= 0.0 and options.autofocus_mode in ("", "manual"):
        parts.append(f"--lens-position {_number(options.lens_position)}")
    add_string("--exposure", options.exposure)
    if options.shutter_us > 0:
        parts.append(f"--shutter {options.shutter_us}")
    add_number("--gain", options.gain)
    add_number("--ev", options.ev)
    add_string("--awb", options.awb)
    add_string("--awbgains", options.awbgains)
    add_string("--metering", options.metering)
    add_string("--denoise", options.denoise)
    add_number("--sharpness", options.sharpness)
    add_number("--contrast", options.contrast)
    add_number("--brightness", options.brightness)
    add_number("--saturation", options.saturation)
    add_string("--roi", options.roi)
    add_string("--tuning-file", options.tuning_file)
    if options.hflip:
        parts.append("--hflip")
    if options.vflip:
        parts.append("--vflip")
    if options.rotation != 0:
        parts.append(f"--rotation {options.rotation}")
    if os.name != "nt":
        parts.append(f"2>{STDERR_LOG}")
    return " ".join(parts)


class MjpegFrameSplitter:
    """Cuts complete JPEG images (SOI to EOI) out of a byte stream."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def buffered_size(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> None:
        """Append stream bytes; drop the older half if the buffer grows too large."""
        self._buffer += data
        if len(self._buffer) > _MAX_BUFFER:
            del self._buffer[: len(self._buffer) // 2]

    def next_frame(self) -> bytes | None:
        """Return the next complete JPEG, or None if more data is needed."""
        buffer = self._buffer
        if len(buffer) < 2:
            return None
        start = buffer.find(_SOI)
        if start < 0:
            del buffer[:-1]
            return None
        end = buffer.find(_EOI, start + 2)
        if end < 0:
            del buffer[:start]
            return None
        end += len(_EOI)
        frame = bytes(buffer[start:end])
        del buffer[:end]
        return frame


class RpicamMjpegSource:
    """Runs rpicam-vid and yields the JPEG frames it writes."""

    def __init__(self) -> None:
        self._process: subprocess.Popen[bytes] | None = None
        self._options = RpicamOptions()
        self._splitter = MjpegFrameSplitter()
        self._next_frame_id = 1

    def __enter__(self) -> RpicamMjpegSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._process is not None

    def open(self, options: RpicamOptions) -> None:
        """Start the capture process with the given options."""
        self.close()
        self._options = options
        self._splitter.clear()
        command = build_command(options)
        try:
            self._process = subprocess.Popen(
                command,
                shell=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
            )
        except OSError as exc:
            raise CameraError(f"failed to start rpicam-vid: {exc.strerror or exc}") from exc

    def read_frame(self) -> CameraFrame:
        """Block until the next complete frame arrives and return it."""
        process = self._process
        if process is None or process.stdout is None:
            raise CameraError("rpicam source is not open")
        stream = process.stdout
        read = getattr(stream, "read1", stream.read)
        while True:
            jpeg = self._splitter.next_frame()
            if jpeg is not None:
                frame = CameraFrame(
                    frame_id=self._next_frame_id,
                    timestamp_ms=unix_timestamp_ms(),
                    width=self._options.width,
                    height=self._options.height,
                    jpeg_data=jpeg,
                )
                self._next_frame_id = (self._next_frame_id + 1) & 0xFFFFFFFF
                return frame
            try:
                chunk = read(_READ_CHUNK)
            except (OSError, ValueError) as exc:
                raise CameraError(
                    f"failed to read rpicam-vid output; check {STDERR_LOG}"
                ) from exc
            if not chunk:
                raise CameraError(f"rpicam-vid ended; check {STDERR_LOG}")
            self._splitter.feed(chunk)

    def close(self) -> None:
        """Close the pipe and wait for the capture process to end."""
        process = self._process
        if process is None:
            return
        self._process = None
        if process.stdout is not None:
            process.stdout.close()
        try:
            process.wait(timeout=_CLOSE_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            process.terminate()
            process.wait()