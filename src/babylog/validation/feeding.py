"""
Feeding rules.

Any number of PREPARED/REFRIGERATED bottles may sit around, but only one
bottle per baby may be in the FEEDING state at a time. A bottle past its
expiry deadline cannot start feeding, and the remaining amount recorded at
the end of a feed must lie in [0, amount_prepared_oz].
"""
import math
import uuid
from typing import List, Optional

from babylog.analysis.bottle import is_expired
from babylog.clock import Clock
from babylog.db.protocols import EventStore
from babylog.models.event import Event, EventCategory, FeedPayload
from babylog.validation.errors import (
    BottleExpired,
    FeedingAlreadyActive,
    InvalidAmount,
    WrongEventCategory,
)


def _require_feed(event: Event) -> FeedPayload:
    payload = event.feed
    if event.category is not EventCategory.FEED or payload is None:
        raise WrongEventCategory()
    return payload


class FeedingValidator:
    def __init__(self, store: EventStore, clock: Clock):
        self.store = store
        self.clock = clock

    def validate_feeding_start(self, subject_id: uuid.UUID) -> None:
        """
        Raises:
            FeedingAlreadyActive: another bottle is already being fed.
        """
        active = self.get_active_feeding(subject_id)
        if active is not None:
            started = active.feed.feeding_started_at
            raise FeedingAlreadyActive(
                started_at=started,
                duration_seconds=int((self.clock.now() - started.utc).total_seconds()),
            )

    def validate_bottle_not_expired(self, event: Event, refrigerated_expiry_hours: int = 24) -> None:
        """
        Raises:
            WrongEventCategory: event is not a feed.
            BottleExpired: the bottle's warning level is EXPIRED right now.
        """
        _require_feed(event)
        if is_expired(event, self.clock.now(), refrigerated_expiry_hours):
            raise BottleExpired()

    def validate_finish_feeding(self, event: Event, amount_remaining_oz: float) -> None:
        """
        Raises:
            WrongEventCategory: event is not a feed.
            InvalidAmount: amount is negative, NaN or infinite, or more than
                was prepared.
        """
        payload = _require_feed(event)
        if (
            amount_remaining_oz is None
            or not math.isfinite(amount_remaining_oz)
            or amount_remaining_oz < 0
        ):
            raise InvalidAmount()
        if amount_remaining_oz > payload.amount_prepared_oz:
            raise InvalidAmount(
                f"Remaining amount ({amount_remaining_oz:g} oz) exceeds the "
                f"{payload.amount_prepared_oz:g} oz prepared"
            )

    # ─── Queries ──────────────────────────────────────────────────────────────

    def get_active_feeding(self, subject_id: uuid.UUID) -> Optional[Event]:
        for event in self.store.fetch_active_events(subject_id, EventCategory.FEED):
            if event.feed is not None and event.feed.feeding_started_at is not None:
                return event
        return None

    def get_prepared_bottles(self, subject_id: uuid.UUID) -> List[Event]:
        """Active feeds that have not started feeding, newest first."""
        return [
            event
            for event in self.store.fetch_active_events(subject_id, EventCategory.FEED)
            if event.feed is not None and event.feed.feeding_started_at is None
        ]

    def get_expired_bottles(self, subject_id: uuid.UUID, refrigerated_expiry_hours: int = 24) -> List[Event]:
        now = self.clock.now()
        return [
            event
            for event in self.get_prepared_bottles(subject_id)
            if is_expired(event, now, refrigerated_expiry_hours)
        ]
