"""Clock aliases so time-dependent services can be driven from tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]
MonotonicClock = Callable[[], float]


def utcnow() -> datetime:
    """Current wall-clock time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


__all__: list[str] = ["Clock", "MonotonicClock", "utcnow"]
