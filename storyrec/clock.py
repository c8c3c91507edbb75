"""Time source used by every time-windowed computation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current UTC-aware time."""
    return datetime.now(timezone.utc)
