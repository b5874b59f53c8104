"""Wire header for chunked MJPEG video packets."""

from __future__ import annotations

import struct
from dataclasses import dataclass

VIDEO_MAGIC = b"AQV1"
VIDEO_HEADER_SIZE = 28
VIDEO_MAX_PAYLOAD_SIZE = 1200

_HEADER = struct.Struct(">4sHHIHHIQ")


class VideoPacketError(ValueError):
    """Raised when a video packet header cannot be built or parsed."""


@dataclass
class VideoPacketHeader:
    flags: int = 0
    frame_id: int = 0
    chunk_index: int = 0
    chunk_count: int = 0
    payload_size: int = 0
    timestamp_ms: int = 0


def serialize_header(header: VideoPacketHeader) -> bytes:
    """Encode header as the fixed 28-byte big-endian wire form."""
    try:
        return _HEADER.pack(
            VIDEO_MAGIC,
            VIDEO_HEADER_SIZE,
            header.flags,
            header.frame_id,
            header.chunk_index,
            header.chunk_count,
            header.payload_size,
            header.timestamp_ms,
        )
    except struct.error as exc:
        raise VideoPacketError(f"header field out of range: {exc}") from exc


def parse_header(data: bytes) -> VideoPacketHeader:
    """Decode the header at the start of data, checking it against the packet length."""
    if len(data) < VIDEO_HEADER_SIZE:
        raise VideoPacketError("packet shorter than header")
    (
        magic,
        header_size,
        flags,
        frame_id,
        chunk_index,
        chunk_count,
        payload_size,
        timestamp_ms,
    ) = _HEADER.unpack_from(data)
    if magic != VIDEO_MAGIC:
        raise VideoPacketError("bad magic")
    if header_size != VIDEO_HEADER_SIZE:
        raise VideoPacketError(f"unexpected header size {header_size}")
    if payload_size > len(data) - VIDEO_HEADER_SIZE:
        raise VideoPacketError("payload size exceeds packet length")
    return VideoPacketHeader(
        flags=flags,
        frame_id=frame_id,
        chunk_index=chunk_index,
        chunk_count=chunk_count,
        payload_size=payload_size,
        timestamp_ms=timestamp_ms,
    )