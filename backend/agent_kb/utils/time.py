"""Time helpers."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds, used for marker timestamps."""
    return int(time.time() * 1000)
