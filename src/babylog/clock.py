"""
Injectable sources of "now".

Every time-dependent computation (bottle expiry, active durations, the
predictor's rolling window) takes a Clock so tests can pin time exactly.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock that only moves when told to.

    Naive datetimes are taken to be UTC.
    """

    def __init__(self, instant: Optional[datetime] = None):
        self._now = as_utc(instant) if instant is not None else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = as_utc(instant)

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        """Move forward by `delta` or by timedelta(**kwargs). Returns the new now."""
        self._now = self._now + (delta if delta is not None else timedelta(**kwargs))
        return self._now


def as_utc(instant: datetime) -> datetime:
    """Normalise a datetime to aware UTC (naive values are assumed UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)
