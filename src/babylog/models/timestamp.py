"""
EventTimestamp: a UTC instant plus the zone it was recorded in.

The offset is captured once, when the timestamp is created, and is never
recomputed. A sleep logged at 02:00 in New York keeps rendering as 02:00
after the family moves to London or the zone's DST rules change.

Durations are plain integer seconds; formatting beyond `format_duration`
belongs to the presentation layer.
"""
import functools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from babylog.clock import Clock, as_utc
from babylog.config import get_settings


def _zone(timezone_id: str) -> tzinfo:
    try:
        return ZoneInfo(timezone_id)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class EventTimestamp:
    """Immutable instant. Ordering and equality look at `utc` only."""

    utc: datetime
    timezone_id: str
    offset_seconds: int

    def __post_init__(self):
        if not isinstance(self.offset_seconds, int):
            raise ValueError("offset_seconds must be an integer number of seconds")
        object.__setattr__(self, "utc", as_utc(self.utc))

    # ─── Constructors ─────────────────────────────────────────────────────────

    @classmethod
    def at(cls, instant: datetime, timezone_id: Optional[str] = None) -> "EventTimestamp":
        """
        Record `instant` as seen from `timezone_id`.

        Falls back to Settings.default_timezone. An unknown zone id is kept
        verbatim but its offset is taken as 0.
        """
        tz_id = timezone_id or get_settings().default_timezone
        utc = as_utc(instant)
        offset = utc.astimezone(_zone(tz_id)).utcoffset() or timedelta(0)
        return cls(utc=utc, timezone_id=tz_id, offset_seconds=int(offset.total_seconds()))

    @classmethod
    def now(cls, clock: Clock, timezone_id: Optional[str] = None) -> "EventTimestamp":
        return cls.at(clock.now(), timezone_id)

    # ─── Display helpers ──────────────────────────────────────────────────────

    @property
    def zone(self) -> tzinfo:
        """Fixed-offset zone as recorded (not the zone's current rules)."""
        return timezone(timedelta(seconds=self.offset_seconds))

    @property
    def local_datetime(self) -> datetime:
        return self.utc.astimezone(self.zone)

    # ─── Comparison / arithmetic ──────────────────────────────────────────────

    def __eq__(self, other):
        if not isinstance(other, EventTimestamp):
            return NotImplemented
        return self.utc == other.utc

    def __lt__(self, other):
        if not isinstance(other, EventTimestamp):
            return NotImplemented
        return self.utc < other.utc

    def __hash__(self):
        return hash(self.utc)

    def __sub__(self, other) -> timedelta:
        if isinstance(other, EventTimestamp):
            return self.utc - other.utc
        if isinstance(other, datetime):
            return self.utc - as_utc(other)
        return NotImplemented

    def __add__(self, delta: timedelta) -> datetime:
        """Shifting a recorded instant yields a bare UTC datetime, not a new record."""
        if not isinstance(delta, timedelta):
            return NotImplemented
        return self.utc + delta

    def to_dict(self) -> dict:
        return {
            "utc": self.utc.isoformat(),
            "timezone_id": self.timezone_id,
            "offset_seconds": self.offset_seconds,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "EventTimestamp":
        return cls(
            utc=datetime.fromisoformat(raw["utc"]),
            timezone_id=raw["timezone_id"],
            offset_seconds=int(raw["offset_seconds"]),
        )


def duration(start: EventTimestamp, end: EventTimestamp) -> int:
    """Whole seconds from `start` to `end`. Negative if `end` is earlier."""
    return int((end.utc - start.utc).total_seconds())


def duration_until_now(start: EventTimestamp, now: datetime) -> int:
    return int((as_utc(now) - start.utc).total_seconds())


def format_duration(seconds: float) -> str:
    """
    Render a duration as "1h 23m" or "7m".

    Truncates toward zero, like the conflict messages always have.
    """
    total = int(seconds)
    hours = total // 3600 if total >= 0 else -((-total) // 3600)
    minutes = (abs(total) % 3600) // 60
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
