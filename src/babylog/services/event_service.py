"""
EventService: the use-case layer for logging caregiving events.

Flow for every use case:
  1. Take the baby's lock (one lock per subject; different babies never wait
     on each other)
  2. Re-read the target event from the store where one is involved
  3. Validate (SleepValidator / FeedingValidator)
  4. Build the new Event value and persist it
  5. Only after the store confirmed the write, update the in-memory
     projections and bottle reminders

Validation failures come back as an ActionResult carrying the error; the
caller checks `is_conflict` to offer "end the current sleep?" style choices
instead of a plain error. Store failures (StoreError, NotFoundError) are
raised unchanged and leave projections exactly as they were.

The projections (active sleep, active feeding, prepared bottles) are a
cache. `refresh_state` rebuilds them from the store and must be called after
anything outside this service touches the store.
"""
import logging
import math
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

from babylog.clock import Clock, SystemClock
from babylog.db.errors import NotFoundError, StoreError
from babylog.db.protocols import EventStore
from babylog.models.event import (
    DiaperContents,
    DiaperPayload,
    Event,
    EventCategory,
    FeedPayload,
    SleepPayload,
)
from babylog.models.timestamp import EventTimestamp, duration
from babylog.services.expiry import BottleReminderScheduler
from babylog.validation.errors import (
    ConflictError,
    EventAlreadyEnded,
    InvalidAmount,
    InvalidTimeRange,
    ValidationError,
    WrongEventCategory,
)
from babylog.validation.feeding import FeedingValidator
from babylog.validation.sleep import SleepValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _check_end_time(event: Event, end_time: EventTimestamp) -> None:
    """Raises InvalidTimeRange if the clock reads earlier than the event start."""
    if duration(event.start_time, end_time) < 0:
        raise InvalidTimeRange()


@dataclass
class SubjectState:
    """Cached view of one baby's in-progress sessions."""
    active_sleep: Optional[Event] = None
    active_feeding: Optional[Event] = None
    prepared_bottles: List[Event] = field(default_factory=list)

    def copy(self) -> "SubjectState":
        return SubjectState(
            active_sleep=self.active_sleep,
            active_feeding=self.active_feeding,
            prepared_bottles=list(self.prepared_bottles),
        )

    def forget(self, event_id: uuid.UUID) -> None:
        """Drop an event from whichever projection holds it."""
        if self.active_sleep is not None and self.active_sleep.id == event_id:
            self.active_sleep = None
        if self.active_feeding is not None and self.active_feeding.id == event_id:
            self.active_feeding = None
        self.prepared_bottles = [b for b in self.prepared_bottles if b.id != event_id]


@dataclass
class ActionResult:
    """Outcome of a use case: the saved event, or the validation error that stopped it."""
    event: Optional[Event] = None
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_conflict(self) -> bool:
        return isinstance(self.error, ConflictError)


class EventService:
    """Sequences validation, persistence and projection updates per baby."""

    def __init__(
        self,
        store: EventStore,
        clock: Optional[Clock] = None,
        sleep_validator: Optional[SleepValidator] = None,
        feeding_validator: Optional[FeedingValidator] = None,
        reminders: Optional[BottleReminderScheduler] = None,
        timezone_id: Optional[str] = None,
    ):
        """
        Args:
            store: EventStore collaborator (SqlEventStore or any fake).
            clock: Source of "now"; wall clock if omitted.
            sleep_validator / feeding_validator: Built over `store` if omitted.
            reminders: Optional expiry reminder scheduler.
            timezone_id: Zone recorded on new timestamps; Settings default if omitted.
        """
        self.store = store
        self.clock = clock or SystemClock()
        self.sleep_validator = sleep_validator or SleepValidator(store, self.clock)
        self.feeding_validator = feeding_validator or FeedingValidator(store, self.clock)
        self.reminders = reminders
        self.timezone_id = timezone_id

        self._states: Dict[uuid.UUID, SubjectState] = {}
        self._locks: Dict[uuid.UUID, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ─── Projections ──────────────────────────────────────────────────────────

    def state(self, subject_id: uuid.UUID) -> SubjectState:
        """
        Snapshot of the cached projections. Mutating it changes nothing.

        A subject this service has never touched gets an empty snapshot and no
        lock or cache entry.
        """
        if subject_id not in self._states:
            return SubjectState()
        with self._subject(subject_id) as state:
            return state.copy()

    def refresh_state(self, subject_id: uuid.UUID) -> SubjectState:
        """Rebuild all three projections from the store and return a snapshot."""
        with self._subject(subject_id):
            fresh = SubjectState(
                active_sleep=self.sleep_validator.get_active_sleep(subject_id),
                active_feeding=self.feeding_validator.get_active_feeding(subject_id),
                prepared_bottles=self.feeding_validator.get_prepared_bottles(subject_id),
            )
            self._states[subject_id] = fresh
            return fresh.copy()

    # ─── Sleep ────────────────────────────────────────────────────────────────

    def start_sleep(self, subject_id: uuid.UUID, author_id: uuid.UUID) -> ActionResult:
        with self._subject(subject_id) as state:
            try:
                self.sleep_validator.validate_new_sleep(subject_id)
            except ValidationError as exc:
                return self._rejected("start_sleep", subject_id, exc)

            event = Event.new(subject_id, author_id, SleepPayload(), self._stamp())
            created = self._persist("start_sleep", self.store.create, event)
            state.active_sleep = created
            logger.info("Sleep %s started for %s", created.id, subject_id)
            return ActionResult(event=created)

    def end_sleep(self, event: Event) -> ActionResult:
        with self._subject(event.subject_id) as state:
            current = self._current(event)
            now = self._stamp()
            try:
                self.sleep_validator.validate_end_sleep(current)
                _check_end_time(current, now)
            except ValidationError as exc:
                return self._rejected("end_sleep", event.subject_id, exc)

            ended = replace(current, end_time=now)
            saved = self._persist("end_sleep", self.store.update, ended)
            state.forget(saved.id)
            logger.info("Sleep %s ended after %ss", saved.id, saved.duration_seconds)
            return ActionResult(event=saved)

    def toggle_sleep(self, subject_id: uuid.UUID, author_id: uuid.UUID) -> ActionResult:
        """End the projected active sleep if there is one, otherwise start a new one."""
        with self._subject(subject_id) as state:
            if state.active_sleep is not None:
                return self.end_sleep(state.active_sleep)
            return self.start_sleep(subject_id, author_id)

    # ─── Bottles ──────────────────────────────────────────────────────────────

    def prepare_bottle(
        self,
        subject_id: uuid.UUID,
        author_id: uuid.UUID,
        amount_oz: float,
        is_refrigerated: bool = False,
        refrigerated_expiry_hours: int = 24,
    ) -> ActionResult:
        with self._subject(subject_id) as state:
            if amount_oz is None or not math.isfinite(amount_oz) or amount_oz <= 0:
                return self._rejected(
                    "prepare_bottle", subject_id,
                    InvalidAmount("Bottle amount must be greater than zero"),
                )

            payload = FeedPayload(amount_prepared_oz=amount_oz, is_refrigerated=is_refrigerated)
            event = Event.new(subject_id, author_id, payload, self._stamp())
            created = self._persist("prepare_bottle", self.store.create, event)
            state.prepared_bottles.append(created)
            if self.reminders is not None:
                self.reminders.schedule(created, refrigerated_expiry_hours)
            logger.info("Prepared %.1f oz bottle %s for %s", amount_oz, created.id, subject_id)
            return ActionResult(event=created)

    def start_feeding(self, event: Event, refrigerated_expiry_hours: int = 24) -> ActionResult:
        with self._subject(event.subject_id) as state:
            current = self._current(event)
            try:
                self.feeding_validator.validate_feeding_start(current.subject_id)
                self.feeding_validator.validate_bottle_not_expired(current, refrigerated_expiry_hours)
                if not current.is_active:
                    raise EventAlreadyEnded()
            except ValidationError as exc:
                return self._rejected("start_feeding", event.subject_id, exc)

            payload = replace(current.feed, feeding_started_at=self._stamp())
            saved = self._persist("start_feeding", self.store.update, replace(current, payload=payload))
            state.forget(saved.id)
            state.active_feeding = saved
            if self.reminders is not None:
                self.reminders.schedule(saved, refrigerated_expiry_hours)
            logger.info("Feeding started from bottle %s", saved.id)
            return ActionResult(event=saved)

    def finish_feeding(self, event: Event, amount_remaining_oz: float) -> ActionResult:
        with self._subject(event.subject_id) as state:
            current = self._current(event)
            now = self._stamp()
            try:
                self.feeding_validator.validate_finish_feeding(current, amount_remaining_oz)
                if not current.is_active:
                    raise EventAlreadyEnded()
                _check_end_time(current, now)
            except ValidationError as exc:
                return self._rejected("finish_feeding", event.subject_id, exc)

            payload = replace(current.feed, amount_remaining_oz=amount_remaining_oz)
            finished = replace(current, payload=payload, end_time=now)
            saved = self._persist("finish_feeding", self.store.update, finished)
            state.forget(saved.id)
            if self.reminders is not None:
                self.reminders.cancel(saved)
            logger.info(
                "Feeding %s finished, %.1f oz consumed", saved.id, saved.feed.amount_consumed_oz
            )
            return ActionResult(event=saved)

    def discard_bottle(self, event: Event) -> ActionResult:
        """Soft-delete a bottle in any non-finished state without finishing it."""
        with self._subject(event.subject_id) as state:
            current = self._current(event)
            try:
                if current.category is not EventCategory.FEED:
                    raise WrongEventCategory()
                if not current.is_active:
                    raise EventAlreadyEnded()
            except ValidationError as exc:
                return self._rejected("discard_bottle", event.subject_id, exc)

            deleted = self._persist("discard_bottle", self.store.soft_delete, current)
            state.forget(deleted.id)
            if self.reminders is not None:
                self.reminders.cancel(deleted)
            logger.info("Bottle %s discarded", deleted.id)
            return ActionResult(event=deleted)

    # ─── Diapers ──────────────────────────────────────────────────────────────

    def log_diaper(
        self,
        subject_id: uuid.UUID,
        author_id: uuid.UUID,
        contents: DiaperContents = DiaperContents.BOTH,
    ) -> ActionResult:
        """Diaper changes are instantaneous: start and end are the same moment."""
        with self._subject(subject_id):
            now = self._stamp()
            event = replace(
                Event.new(subject_id, author_id, DiaperPayload(contents=contents), now),
                end_time=now,
            )
            created = self._persist("log_diaper", self.store.create, event)
            logger.info("Diaper (%s) logged for %s", created.diaper.contents.value, subject_id)
            return ActionResult(event=created)

    # ─── Event management ─────────────────────────────────────────────────────

    def update_notes(self, event: Event, notes: Optional[str]) -> ActionResult:
        with self._subject(event.subject_id) as state:
            current = self._current(event)
            saved = self._persist("update_notes", self.store.update, replace(current, notes=notes))
            self._replace_cached(state, saved)
            return ActionResult(event=saved)

    def delete_event(self, event: Event) -> ActionResult:
        """Soft-delete any event, then rebuild projections from the store."""
        with self._subject(event.subject_id):
            current = self._current(event)
            deleted = self._persist("delete_event", self.store.soft_delete, current)
            if self.reminders is not None and deleted.feed is not None:
                self.reminders.cancel(deleted)
            self.refresh_state(event.subject_id)
            logger.info("Event %s deleted", deleted.id)
            return ActionResult(event=deleted)

    def purge_event(self, event: Event) -> None:
        """Permanently remove an event. No business rules apply."""
        with self._subject(event.subject_id):
            self._persist("purge_event", self.store.hard_delete, event)
            if self.reminders is not None:
                self.reminders.cancel(event)
            self.refresh_state(event.subject_id)
            logger.warning("Event %s permanently deleted", event.id)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    @contextmanager
    def _subject(self, subject_id: uuid.UUID) -> Iterator[SubjectState]:
        with self._locks_guard:
            lock = self._locks.setdefault(subject_id, threading.RLock())
        with lock:
            yield self._states.setdefault(subject_id, SubjectState())

    def _stamp(self) -> EventTimestamp:
        return EventTimestamp.now(self.clock, self.timezone_id)

    def _current(self, event: Event) -> Event:
        """Latest stored version of `event`. Raises NotFoundError if it is gone."""
        current = self.store.fetch(event.id)
        if current is None:
            raise NotFoundError(f"Event {event.id} not found")
        return current

    def _persist(self, action: str, write: Callable[..., T], event: Event) -> T:
        try:
            return write(event)
        except StoreError as exc:
            logger.error("%s failed for event %s: %s", action, event.id, exc)
            raise

    @staticmethod
    def _replace_cached(state: SubjectState, saved: Event) -> None:
        if state.active_sleep is not None and state.active_sleep.id == saved.id:
            state.active_sleep = saved
        if state.active_feeding is not None and state.active_feeding.id == saved.id:
            state.active_feeding = saved
        state.prepared_bottles = [saved if b.id == saved.id else b for b in state.prepared_bottles]

    @staticmethod
    def _rejected(action: str, subject_id: uuid.UUID, exc: ValidationError) -> ActionResult:
        logger.warning("%s rejected for %s: %s", action, subject_id, exc.message)
        return ActionResult(error=exc)
