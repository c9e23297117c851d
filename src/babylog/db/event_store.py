"""
SqlEventStore: EventStore backed by SQLModel.

Each call opens its own short Session, so one store instance can be shared
by the event service, validators and predictor (and across threads, given
an engine that allows it).

Write failures from SQLAlchemy are re-raised as StoreError; a missing row on
update/delete raises NotFoundError. No retries happen here or above.
"""
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from babylog.clock import Clock, SystemClock, as_utc
from babylog.db.errors import NotFoundError, StoreError
from babylog.models.event import (
    Event,
    EventCategory,
    payload_from_dict,
    payload_to_dict,
)
from babylog.models.records import EventRecord
from babylog.models.timestamp import EventTimestamp

logger = logging.getLogger(__name__)


# ─── Row ↔ domain conversion ──────────────────────────────────────────────────

def event_to_record(event: Event) -> EventRecord:
    record = EventRecord(
        id=event.id,
        subject_id=event.subject_id,
        author_id=event.author_id,
        category=event.category.value,
        start_time_utc=as_utc(event.start_time.utc),
        start_time_timezone=event.start_time.timezone_id,
        start_time_offset=event.start_time.offset_seconds,
        payload_json="{}",  # filled in by apply_event
        created_at=as_utc(event.created_at),
        updated_at=as_utc(event.updated_at),
    )
    apply_event(record, event)
    return record


def apply_event(record: EventRecord, event: Event) -> None:
    """Copy every mutable field of `event` onto an existing row."""
    record.start_time_utc = as_utc(event.start_time.utc)
    record.start_time_timezone = event.start_time.timezone_id
    record.start_time_offset = event.start_time.offset_seconds
    if event.end_time is not None:
        record.end_time_utc = as_utc(event.end_time.utc)
        record.end_time_timezone = event.end_time.timezone_id
        record.end_time_offset = event.end_time.offset_seconds
    else:
        record.end_time_utc = None
        record.end_time_timezone = None
        record.end_time_offset = None
    record.payload_json = json.dumps(payload_to_dict(event.payload))
    record.notes = event.notes
    record.updated_at = as_utc(event.updated_at)
    record.deleted_at = as_utc(event.deleted_at) if event.deleted_at else None


def record_to_event(record: EventRecord) -> Event:
    end_time = None
    if record.end_time_utc is not None:
        end_time = EventTimestamp(
            utc=record.end_time_utc,
            timezone_id=record.end_time_timezone or "UTC",
            offset_seconds=record.end_time_offset or 0,
        )
    return Event(
        id=record.id,
        subject_id=record.subject_id,
        author_id=record.author_id,
        category=EventCategory(record.category),
        start_time=EventTimestamp(
            utc=record.start_time_utc,
            timezone_id=record.start_time_timezone,
            offset_seconds=record.start_time_offset,
        ),
        end_time=end_time,
        payload=payload_from_dict(json.loads(record.payload_json)),
        notes=record.notes,
        created_at=record.created_at,
        updated_at=record.updated_at,
        deleted_at=record.deleted_at,
    )


# ─── Store ────────────────────────────────────────────────────────────────────

class SqlEventStore:
    """EventStore over a SQLAlchemy engine."""

    def __init__(self, engine, clock: Optional[Clock] = None):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            clock: Source of updated_at / deleted_at stamps. Defaults to wall time.
        """
        self.engine = engine
        self.clock = clock or SystemClock()

    # ─── Queries ──────────────────────────────────────────────────────────────

    def fetch(self, event_id: uuid.UUID) -> Optional[Event]:
        with Session(self.engine) as s:
            record = s.get(EventRecord, event_id)
            return record_to_event(record) if record else None

    def fetch_active_events(self, subject_id: uuid.UUID, category: EventCategory) -> List[Event]:
        stmt = (
            select(EventRecord)
            .where(EventRecord.subject_id == subject_id)
            .where(EventRecord.category == EventCategory(category).value)
            .where(EventRecord.end_time_utc.is_(None))
            .where(EventRecord.deleted_at.is_(None))
            .order_by(EventRecord.start_time_utc.desc())
        )
        return self._fetch_all(stmt)

    def fetch_events_between(
        self, subject_id: uuid.UUID, start: datetime, end: datetime
    ) -> List[Event]:
        stmt = (
            select(EventRecord)
            .where(EventRecord.subject_id == subject_id)
            .where(EventRecord.start_time_utc >= as_utc(start))
            .where(EventRecord.start_time_utc <= as_utc(end))
            .where(EventRecord.deleted_at.is_(None))
            .order_by(EventRecord.start_time_utc.desc())
        )
        return self._fetch_all(stmt)

    def fetch_events(self, subject_id: uuid.UUID, include_deleted: bool = False) -> List[Event]:
        stmt = select(EventRecord).where(EventRecord.subject_id == subject_id)
        if not include_deleted:
            stmt = stmt.where(EventRecord.deleted_at.is_(None))
        return self._fetch_all(stmt.order_by(EventRecord.start_time_utc.desc()))

    def fetch_most_recent(self, subject_id: uuid.UUID, category: EventCategory) -> Optional[Event]:
        stmt = (
            select(EventRecord)
            .where(EventRecord.subject_id == subject_id)
            .where(EventRecord.category == EventCategory(category).value)
            .where(EventRecord.deleted_at.is_(None))
            .order_by(EventRecord.start_time_utc.desc())
            .limit(1)
        )
        events = self._fetch_all(stmt)
        return events[0] if events else None

    def fetch_prepared_bottles(self, subject_id: uuid.UUID) -> List[Event]:
        """Active feeds that have not started feeding (PREPARED or REFRIGERATED)."""
        return [
            event
            for event in self.fetch_active_events(subject_id, EventCategory.FEED)
            if event.feed.feeding_started_at is None
        ]

    # ─── Writes ───────────────────────────────────────────────────────────────

    def create(self, event: Event) -> Event:
        try:
            with Session(self.engine) as s:
                s.add(event_to_record(event))
                s.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to create event %s: %s", event.id, exc)
            raise StoreError(f"Failed to save event {event.id}") from exc
        return event

    def update(self, event: Event) -> Event:
        """Persist `event` and return it with a fresh updated_at."""
        updated = replace(event, updated_at=self.clock.now())
        self._write(event.id, lambda record: apply_event(record, updated))
        return updated

    def soft_delete(self, event: Event) -> Event:
        now = self.clock.now()
        deleted = replace(event, deleted_at=now, updated_at=now)

        def mark(record: EventRecord) -> None:
            record.deleted_at = as_utc(now)
            record.updated_at = as_utc(now)

        self._write(event.id, mark)
        return deleted

    def hard_delete(self, event: Event) -> None:
        """Remove the row outright. Bypasses every business rule."""
        try:
            with Session(self.engine) as s:
                record = s.get(EventRecord, event.id)
                if record is None:
                    raise NotFoundError(f"Event {event.id} not found")
                s.delete(record)
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to delete event {event.id}") from exc

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _fetch_all(self, stmt) -> List[Event]:
        with Session(self.engine) as s:
            return [record_to_event(r) for r in s.exec(stmt).all()]

    def _write(self, event_id: uuid.UUID, mutate) -> None:
        try:
            with Session(self.engine) as s:
                record = s.get(EventRecord, event_id)
                if record is None:
                    raise NotFoundError(f"Event {event_id} not found")
                mutate(record)
                s.add(record)
                s.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to write event %s: %s", event_id, exc)
            raise StoreError(f"Failed to save event {event_id}") from exc
