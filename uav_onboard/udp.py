"""UDP datagram sender for JSON telemetry."""

from __future__ import annotations

import socket


class TelemetrySendError(OSError):
    """Raised when the telemetry socket cannot be opened or a payload cannot be sent."""


class UdpTelemetrySender:
    """Sends each payload as one UDP datagram to a fixed destination."""

    def __init__(self) -> None:
        self._sock: socket.socket | None = None
        self._ip = ""
        self._port = 0

    def __enter__(self) -> UdpTelemetrySender:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def open(self, ip: str, port: int) -> None:
        """Create a broadcast-capable UDP socket aimed at ip:port."""
        if not ip:
            raise TelemetrySendError("no telemetry destination IP configured")
        self.close()
        self._ip = ip
        self._port = port & 0xFFFF
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise TelemetrySendError(str(exc)) from exc
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        except OSError as exc:
            sock.close()
            raise TelemetrySendError(str(exc)) from exc
        self._sock = sock

    def send(self, payload: str | bytes) -> None:
        """Send payload as a single datagram; raise TelemetrySendError on failure."""
        if self._sock is None:
            raise TelemetrySendError("socket is not open")
        try:
            socket.inet_pton(socket.AF_INET, self._ip)
        except OSError as exc:
            raise TelemetrySendError(f"invalid destination IP: {self._ip}") from exc
        data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        try:
            sent = self._sock.sendto(data, (self._ip, self._port))
        except OSError as exc:
            raise TelemetrySendError(str(exc)) from exc
        if sent != len(data):
            raise TelemetrySendError(f"short send: {sent} of {len(data)} bytes")

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None