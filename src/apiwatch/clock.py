"""
Time sources for the monitoring engine.

All persisted timestamps are naive UTC datetimes taken from the injected
clock, so tests can pin and move time with a VirtualClock. Timers are not
driven by the clock; they run on APScheduler against wall time.
"""

import asyncio
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall clock; durations come from the event loop's monotonic clock."""

    def now(self) -> datetime:
        return utcnow()

    def monotonic(self) -> float:
        return asyncio.get_running_loop().time()


class VirtualClock:
    """Manually advanced clock for tests."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, 12, 0, 0)
        self._elapsed = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._elapsed

    def advance(self, seconds: float) -> None:
        self._elapsed += seconds
        self._now += timedelta(seconds=seconds)
