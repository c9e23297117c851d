"""
Bottle lifecycle and expiry.

A bottle's state is derived from its FeedPayload, never stored:

    amount_remaining_oz set        → FINISHED   (terminal, wins over everything)
    feeding_started_at set         → FEEDING
    is_refrigerated                → REFRIGERATED
    otherwise                      → PREPARED

Transitions only go forward: PREPARED/REFRIGERATED → FEEDING → FINISHED.

Expiry deadlines:
    PREPARED      start_time + 2h          (room temperature)
    REFRIGERATED  start_time + clamp(h, 1, 24)h
    FEEDING       feeding_started_at + 1h
    FINISHED      no deadline

"Expired" is a warning level computed against a supplied `now`, not a state.
Everything here is pure and must be re-evaluated on each read.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from babylog.clock import as_utc
from babylog.models.baby import clamp_expiry_hours
from babylog.models.event import Event, FeedPayload
from babylog.models.timestamp import EventTimestamp

ROOM_TEMPERATURE_LIFETIME = timedelta(hours=2)
FEEDING_LIFETIME = timedelta(hours=1)

URGENT_THRESHOLD = timedelta(minutes=15)
WARNING_THRESHOLD = timedelta(minutes=30)


class BottleState(str, Enum):
    PREPARED = "prepared"
    REFRIGERATED = "refrigerated"
    FEEDING = "feeding"
    FINISHED = "finished"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class ExpiryWarningLevel(str, Enum):
    NONE = "none"          # no deadline applies (finished bottle)
    SAFE = "safe"          # ≥ 30 min left
    WARNING = "warning"    # 15–30 min left
    URGENT = "urgent"      # < 15 min left
    EXPIRED = "expired"    # past the deadline


def bottle_state(payload: FeedPayload) -> BottleState:
    if payload.amount_remaining_oz is not None:
        return BottleState.FINISHED
    if payload.feeding_started_at is not None:
        return BottleState.FEEDING
    return BottleState.REFRIGERATED if payload.is_refrigerated else BottleState.PREPARED


def is_active_state(state: BottleState) -> bool:
    return state is not BottleState.FINISHED


def expiry_deadline(
    state: BottleState,
    start_time: EventTimestamp,
    feeding_started_at: Optional[EventTimestamp],
    refrigerated_expiry_hours: int = 24,
) -> Optional[datetime]:
    """
    Deadline (UTC) after which the bottle must be discarded.

    Raises:
        ValueError: state is FEEDING but feeding_started_at is missing. That
            combination cannot come out of bottle_state(), so it is a bug in
            the caller rather than a recoverable case.
    """
    if state is BottleState.PREPARED:
        return start_time.utc + ROOM_TEMPERATURE_LIFETIME
    if state is BottleState.REFRIGERATED:
        hours = clamp_expiry_hours(refrigerated_expiry_hours)
        return start_time.utc + timedelta(hours=hours)
    if state is BottleState.FEEDING:
        if feeding_started_at is None:
            raise ValueError("FEEDING bottle has no feeding_started_at")
        return feeding_started_at.utc + FEEDING_LIFETIME
    return None


def bottle_expiry(event: Event, refrigerated_expiry_hours: int = 24) -> Optional[datetime]:
    """expiry_deadline() for a feed Event. Non-feed events have no deadline."""
    payload = event.feed
    if payload is None:
        return None
    return expiry_deadline(
        bottle_state(payload),
        event.start_time,
        payload.feeding_started_at,
        refrigerated_expiry_hours,
    )


def time_until_expiry(
    event: Event, now: datetime, refrigerated_expiry_hours: int = 24
) -> Optional[timedelta]:
    deadline = bottle_expiry(event, refrigerated_expiry_hours)
    if deadline is None:
        return None
    return deadline - as_utc(now)


def warning_level(remaining: Optional[timedelta]) -> ExpiryWarningLevel:
    if remaining is None:
        return ExpiryWarningLevel.NONE
    if remaining <= timedelta(0):
        return ExpiryWarningLevel.EXPIRED
    if remaining < URGENT_THRESHOLD:
        return ExpiryWarningLevel.URGENT
    if remaining < WARNING_THRESHOLD:
        return ExpiryWarningLevel.WARNING
    return ExpiryWarningLevel.SAFE


def bottle_warning_level(
    event: Event, now: datetime, refrigerated_expiry_hours: int = 24
) -> ExpiryWarningLevel:
    return warning_level(time_until_expiry(event, now, refrigerated_expiry_hours))


def is_expired(event: Event, now: datetime, refrigerated_expiry_hours: int = 24) -> bool:
    return bottle_warning_level(event, now, refrigerated_expiry_hours) is ExpiryWarningLevel.EXPIRED


@dataclass
class BottleStatus:
    """Point-in-time view of one bottle for display. Never persist this."""
    state: BottleState
    deadline: Optional[datetime]
    remaining: Optional[timedelta]
    level: ExpiryWarningLevel


def bottle_status(event: Event, now: datetime, refrigerated_expiry_hours: int = 24) -> BottleStatus:
    """
    Raises:
        ValueError: event is not a feed.
    """
    payload = event.feed
    if payload is None:
        raise ValueError(f"{event.category.value} event has no bottle")
    remaining = time_until_expiry(event, now, refrigerated_expiry_hours)
    return BottleStatus(
        state=bottle_state(payload),
        deadline=bottle_expiry(event, refrigerated_expiry_hours),
        remaining=remaining,
        level=warning_level(remaining),
    )
