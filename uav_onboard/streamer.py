"""Best-effort MJPEG frame streaming over UDP in fixed-size chunks."""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass

from uav_onboard.video_packet import (
    VIDEO_MAX_PAYLOAD_SIZE,
    VideoPacketHeader,
    serialize_header,
)


@dataclass
class CameraFrame:
    frame_id: int = 0
    timestamp_ms: int = 0
    width: int = 0
    height: int = 0
    jpeg_data: bytes = b""


class StreamError(OSError):
    """Raised when the video stream cannot be opened or a frame cannot be sent."""


class UdpMjpegStreamer:
    """Splits JPEG frames into headed UDP datagrams and sends them to one address."""

    def __init__(self, chunk_pacing_us: int = 0) -> None:
        self._sock: socket.socket | None = None
        self._ip = ""
        self._port = 0
        self._chunk_pacing_us = max(0, chunk_pacing_us)
        self.last_chunk_count = 0

    def __enter__(self) -> UdpMjpegStreamer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def chunk_pacing_us(self) -> int:
        return self._chunk_pacing_us

    @chunk_pacing_us.setter
    def chunk_pacing_us(self, value: int) -> None:
        self._chunk_pacing_us = max(0, value)

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def open(self, ip: str, port: int) -> None:
        """Create a broadcast-capable UDP socket aimed at ip:port."""
        if not ip:
            raise StreamError("no video destination IP configured")
        self.close()
        self._ip = ip
        self._port = port & 0xFFFF
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise StreamError(str(exc)) from exc
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        except OSError as exc:
            sock.close()
            raise StreamError(str(exc)) from exc
        self._sock = sock

    def send_frame(self, frame: CameraFrame) -> None:
        """Send one frame as a run of chunks; raise StreamError on any failure."""
        if self._sock is None:
            raise StreamError("socket is not open")
        data = memoryview(bytes(frame.jpeg_data))
        if not data:
            raise StreamError("cannot send an empty JPEG frame")
        try:
            socket.inet_pton(socket.AF_INET, self._ip)
        except OSError as exc:
            raise StreamError(f"invalid destination IP: {self._ip}") from exc

        chunk_count = (-(-len(data) // VIDEO_MAX_PAYLOAD_SIZE)) & 0xFFFF
        if chunk_count == 0:
            raise StreamError("invalid chunk count")
        self.last_chunk_count = chunk_count

        address = (self._ip, self._port)
        for chunk_index in range(chunk_count):
            offset = chunk_index * VIDEO_MAX_PAYLOAD_SIZE
            payload = data[offset : offset + VIDEO_MAX_PAYLOAD_SIZE]
            header = VideoPacketHeader(
                frame_id=frame.frame_id & 0xFFFFFFFF,
                chunk_index=chunk_index,
                chunk_count=chunk_count,
                payload_size=len(payload),
                timestamp_ms=frame.timestamp_ms & 0xFFFFFFFFFFFFFFFF,
            )
            packet = serialize_header(header) + payload
            try:
                sent = self._sock.sendto(packet, address)
            except OSError as exc:
                raise StreamError(str(exc)) from exc
            if sent != len(packet):
                raise StreamError(f"short send: {sent} of {len(packet)} bytes")
            if self._chunk_pacing_us > 0 and chunk_index + 1 < chunk_count:
                time.sleep(self._chunk_pacing_us / 1_000_000)

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None