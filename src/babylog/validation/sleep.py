"""
Sleep rules: at most one active (unended, undeleted) sleep per baby.

Validators only read the store and raise; they never mutate anything.
"""
import uuid
from typing import Optional

from babylog.clock import Clock
from babylog.db.protocols import EventStore
from babylog.models.event import Event, EventCategory
from babylog.validation.errors import EventAlreadyEnded, SleepAlreadyActive, WrongEventCategory


class SleepValidator:
    def __init__(self, store: EventStore, clock: Clock):
        self.store = store
        self.clock = clock

    def validate_new_sleep(self, subject_id: uuid.UUID) -> None:
        """
        Raises:
            SleepAlreadyActive: a sleep is already running for this baby.
        """
        active = self.get_active_sleep(subject_id)
        if active is not None:
            raise SleepAlreadyActive(
                started_at=active.start_time,
                duration_seconds=active.active_duration_seconds(self.clock.now()),
            )

    def validate_end_sleep(self, event: Event) -> None:
        """
        Raises:
            WrongEventCategory: event is not a sleep.
            EventAlreadyEnded: event already has an end time or was deleted.
        """
        if event.category is not EventCategory.SLEEP:
            raise WrongEventCategory()
        if not event.is_active:
            raise EventAlreadyEnded()

    def get_active_sleep(self, subject_id: uuid.UUID) -> Optional[Event]:
        active = self.store.fetch_active_events(subject_id, EventCategory.SLEEP)
        return active[0] if active else None
