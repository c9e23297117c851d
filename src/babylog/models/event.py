"""
Caregiving events: sleep, bottle feeds and diaper changes.

An Event carries exactly one payload and the payload's class decides which
category is legal. Construction fails on any mismatch, so a feed event with a
diaper payload cannot exist in memory or be written to the store.

Payloads are serialized as a tagged union:

    {"type": "eat", "data": {"amount_prepared_oz": 4.0, ...}}

"eat" is the persisted tag for feeds.
"""
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from babylog.clock import as_utc
from babylog.models.timestamp import EventTimestamp, duration, duration_until_now


class EventCategory(str, Enum):
    SLEEP = "sleep"
    FEED = "eat"
    DIAPER = "diaper"

    @property
    def display_name(self) -> str:
        return {"sleep": "Sleep", "eat": "Feeding", "diaper": "Diaper"}[self.value]


class DiaperContents(str, Enum):
    WET = "wet"
    DIRTY = "dirty"
    BOTH = "both"

    @property
    def short_display(self) -> str:
        return {"wet": "W", "dirty": "D", "both": "W+D"}[self.value]


# ─── Payloads ─────────────────────────────────────────────────────────────────

@dataclass
class SleepPayload:
    """Sleep has no fields of its own; timing lives on the Event."""


@dataclass
class DiaperPayload:
    contents: DiaperContents = DiaperContents.BOTH

    def __post_init__(self):
        self.contents = DiaperContents(self.contents)


@dataclass
class FeedPayload:
    """
    One prepared bottle.

    Bottle state is never stored: it is derived from which of
    amount_remaining_oz / feeding_started_at / is_refrigerated are set
    (see babylog.analysis.bottle).
    """

    amount_prepared_oz: float
    amount_remaining_oz: Optional[float] = None  # set once the feed is finished
    feeding_started_at: Optional[EventTimestamp] = None
    is_refrigerated: bool = False

    def __post_init__(self):
        amount = self.amount_prepared_oz
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise ValueError("amount_prepared_oz must be a finite amount greater than zero")

    @property
    def amount_consumed_oz(self) -> Optional[float]:
        if self.amount_remaining_oz is None:
            return None
        return self.amount_prepared_oz - self.amount_remaining_oz


Payload = Union[SleepPayload, FeedPayload, DiaperPayload]

_PAYLOAD_TYPES = {
    EventCategory.SLEEP: SleepPayload,
    EventCategory.FEED: FeedPayload,
    EventCategory.DIAPER: DiaperPayload,
}


def payload_category(payload: Payload) -> EventCategory:
    for category, cls in _PAYLOAD_TYPES.items():
        if isinstance(payload, cls):
            return category
    raise ValueError(f"Unknown payload type: {type(payload).__name__}")


def payload_to_dict(payload: Payload) -> Dict[str, Any]:
    category = payload_category(payload)
    if isinstance(payload, FeedPayload):
        data = {
            "amount_prepared_oz": payload.amount_prepared_oz,
            "amount_remaining_oz": payload.amount_remaining_oz,
            "feeding_started_at": (
                payload.feeding_started_at.to_dict()
                if payload.feeding_started_at is not None
                else None
            ),
            "is_refrigerated": payload.is_refrigerated,
        }
    elif isinstance(payload, DiaperPayload):
        data = {"contents": payload.contents.value}
    else:
        data = {}
    return {"type": category.value, "data": data}


def payload_from_dict(raw: Dict[str, Any]) -> Payload:
    """Decode a tagged payload. Raises ValueError on an unknown tag."""
    try:
        category = EventCategory(raw["type"])
    except (KeyError, ValueError):
        raise ValueError(f"Unknown event type: {raw.get('type')!r}") from None

    data = raw.get("data") or {}
    if category is EventCategory.FEED:
        started = data.get("feeding_started_at")
        return FeedPayload(
            amount_prepared_oz=float(data["amount_prepared_oz"]),
            amount_remaining_oz=data.get("amount_remaining_oz"),
            feeding_started_at=EventTimestamp.from_dict(started) if started else None,
            is_refrigerated=bool(data.get("is_refrigerated", False)),
        )
    if category is EventCategory.DIAPER:
        return DiaperPayload(contents=DiaperContents(data.get("contents", "both")))
    return SleepPayload()


# ─── Event ────────────────────────────────────────────────────────────────────

@dataclass
class Event:
    """A logged caregiving occurrence. `end_time is None` means in progress."""

    subject_id: uuid.UUID
    author_id: uuid.UUID
    category: EventCategory
    start_time: EventTimestamp
    payload: Payload
    end_time: Optional[EventTimestamp] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        self.category = EventCategory(self.category)
        if payload_category(self.payload) is not self.category:
            raise ValueError(
                f"{type(self.payload).__name__} is not a valid payload for "
                f"a {self.category.value} event"
            )
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be earlier than start_time")
        if self.created_at is None:
            self.created_at = self.start_time.utc
        else:
            self.created_at = as_utc(self.created_at)
        if self.updated_at is None:
            self.updated_at = self.created_at
        else:
            self.updated_at = as_utc(self.updated_at)
        if self.deleted_at is not None:
            self.deleted_at = as_utc(self.deleted_at)

    @classmethod
    def new(
        cls,
        subject_id: uuid.UUID,
        author_id: uuid.UUID,
        payload: Payload,
        start_time: EventTimestamp,
        notes: Optional[str] = None,
    ) -> "Event":
        """New in-progress event; category follows the payload."""
        return cls(
            subject_id=subject_id,
            author_id=author_id,
            category=payload_category(payload),
            start_time=start_time,
            payload=payload,
            notes=notes,
        )

    @property
    def is_active(self) -> bool:
        return self.end_time is None and self.deleted_at is None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return duration(self.start_time, self.end_time)

    def active_duration_seconds(self, now: datetime) -> int:
        return duration_until_now(self.start_time, now)

    @property
    def feed(self) -> Optional[FeedPayload]:
        return self.payload if isinstance(self.payload, FeedPayload) else None

    @property
    def diaper(self) -> Optional[DiaperPayload]:
        return self.payload if isinstance(self.payload, DiaperPayload) else None
