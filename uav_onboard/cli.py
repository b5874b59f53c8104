"""Bring-up telemetry sender: periodically sends TELEMETRY datagrams to the GCS."""

from __future__ import annotations

import itertools
import re
import sys
import time
from dataclasses import dataclass
from typing import Sequence

from uav_onboard.clock import unix_timestamp_ms
from uav_onboard.config import load_network_config
from uav_onboard.telemetry import BringupTelemetry, build_telemetry_json
from uav_onboard.udp import TelemetrySendError, UdpTelemetrySender

USAGE = (
    "Usage: uav_onboard [options]\n"
    "\n"
    "Options:\n"
    "  --config <dir>       Config directory containing network.toml\n"
    "  --gcs-ip <ip>        Override GCS telemetry destination IP\n"
    "  --port <n>           Override GCS telemetry destination UDP port\n"
    "  --count <n>          Send n telemetry packets, 0 means forever\n"
    "  --interval-ms <n>    Override telemetry send interval\n"
    "  -h, --help           Show this help\n"
)

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


@dataclass
class Options:
    config_dir: str = "../config"
    gcs_ip_override: str = ""
    count: int = 0
    interval_ms: int = 0
    telemetry_port_override: int = 0


def _parse_int(value: str, fallback: int) -> int:
    match = _INT_PREFIX.match(value)
    if match is None:
        return fallback
    number = int(match.group(1))
    return number if _INT32_MIN <= number <= _INT32_MAX else fallback


def _set_config(options: Options, value: str) -> None:
    options.config_dir = value


def _set_gcs_ip(options: Options, value: str) -> None:
    options.gcs_ip_override = value


def _set_port(options: Options, value: str) -> None:
    options.telemetry_port_override = _parse_int(value, options.telemetry_port_override)


def _set_count(options: Options, value: str) -> None:
    options.count = _parse_int(value, options.count)


def _set_interval(options: Options, value: str) -> None:
    options.interval_ms = _parse_int(value, options.interval_ms)


_VALUE_OPTIONS = {
    "--config": _set_config,
    "--gcs-ip": _set_gcs_ip,
    "--port": _set_port,
    "--count": _set_count,
    "--interval-ms": _set_interval,
}


def parse_options(argv: Sequence[str]) -> Options:
    """Parse command-line arguments (without the program name)."""
    options = Options()
    args = iter(argv)
    for arg in args:
        if arg in ("-h", "--help"):
            sys.stdout.write(USAGE)
            raise SystemExit(0)
        setter = _VALUE_OPTIONS.get(arg)
        if setter is not None:
            value = next(args, None)
            if value is not None:
                setter(options, value)
                continue
        print(f"unknown or incomplete option: {arg}", file=sys.stderr)
        sys.stdout.write(USAGE)
        raise SystemExit(2)
    return options


def main(argv: Sequence[str] | None = None) -> int:
    options = parse_options(sys.argv[1:] if argv is None else argv)
    config = load_network_config(options.config_dir)
    if options.gcs_ip_override:
        config.gcs_ip = options.gcs_ip_override
    if options.telemetry_port_override > 0:
        config.telemetry_port = options.telemetry_port_override & 0xFFFF
    if options.interval_ms > 0:
        config.telemetry_interval_ms = options.interval_ms

    sender = UdpTelemetrySender()
    try:
        sender.open(config.gcs_ip, config.telemetry_port)
    except TelemetrySendError as exc:
        print(f"failed to open UDP telemetry sender: {exc}", file=sys.stderr)
        return 1

    with sender:
        count_text = "forever" if options.count == 0 else str(options.count)
        print("uav_onboard bring-up telemetry")
        print(f"  destination: {config.gcs_ip}:{config.telemetry_port}")
        print(f"  interval_ms: {config.telemetry_interval_ms}")
        print(f"  count: {count_text}", flush=True)

        seqs = itertools.count(1) if options.count == 0 else range(1, options.count + 1)
        for seq in seqs:
            telemetry = BringupTelemetry(
                seq=seq & 0xFFFFFFFF,
                timestamp_ms=unix_timestamp_ms(),
                note="camera_preview is the dedicated camera bring-up tool",
            )
            telemetry.camera.status = "not_checked"
            try:
                sender.send(build_telemetry_json(telemetry))
            except TelemetrySendError as exc:
                print(f"failed to send telemetry: {exc}", file=sys.stderr)
                return 1
            print(
                f"sent TELEMETRY seq={telemetry.seq} timestamp_ms={telemetry.timestamp_ms}",
                flush=True,
            )
            time.sleep(max(0, config.telemetry_interval_ms) / 1000)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())