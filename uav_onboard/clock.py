"""Wall-clock helpers."""

import time


def unix_timestamp_ms() -> int:
    """Return the current Unix time in whole milliseconds."""
    return time.time_ns() // 1_000_000