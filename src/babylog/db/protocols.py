"""
Collaborator contracts the core is written against.

The SQL stores in this package satisfy them, but validators, the event
service and the predictor only ever see these protocols, so any backend
(remote API, in-memory fake) can be dropped in.

List queries return events ordered by start time, newest first.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Protocol

from babylog.models.baby import Baby
from babylog.models.event import Event, EventCategory


class EventStore(Protocol):
    def fetch(self, event_id: uuid.UUID) -> Optional[Event]: ...

    def fetch_active_events(self, subject_id: uuid.UUID, category: EventCategory) -> List[Event]:
        """Events with no end time that are not soft-deleted."""
        ...

    def fetch_events_between(
        self, subject_id: uuid.UUID, start: datetime, end: datetime
    ) -> List[Event]:
        """Non-deleted events whose start time falls in [start, end]."""
        ...

    def fetch_events(self, subject_id: uuid.UUID, include_deleted: bool = False) -> List[Event]: ...

    def create(self, event: Event) -> Event: ...

    def update(self, event: Event) -> Event:
        """Raises NotFoundError if the event does not exist."""
        ...

    def soft_delete(self, event: Event) -> Event: ...

    def hard_delete(self, event: Event) -> None: ...


class BabyStore(Protocol):
    def create(self, baby: Baby) -> Baby: ...

    def fetch(self, baby_id: uuid.UUID) -> Optional[Baby]: ...

    def update(self, baby: Baby) -> Baby:
        """Raises NotFoundError if the baby does not exist."""
        ...
