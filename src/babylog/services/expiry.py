"""
Bottle expiry reminders.

A reminder fires `expiry_warning_minutes` (15) before a bottle's deadline.
If that moment lands inside the caregiver's quiet hours it is pushed to the
end of the quiet window on the bottle's local clock, the next day if needed.
Quiet hours are a half-open [start, end) range of hours and may wrap past
midnight (22 → 6).

Jobs live in an APScheduler scheduler under the id `bottle-expiry-<event id>`
so each bottle has at most one pending reminder. Delivery is out of scope:
a fired job hands a BottleReminder to the `notify` callable supplied by the
host application.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from babylog.analysis.bottle import bottle_expiry, time_until_expiry
from babylog.clock import Clock, as_utc
from babylog.config import Settings, get_settings
from babylog.models.event import Event

logger = logging.getLogger(__name__)

REMINDER_JOB_PREFIX = "bottle-expiry-"


@dataclass
class BottleReminder:
    """Payload handed to `notify` when a reminder fires."""
    event_id: uuid.UUID
    subject_id: uuid.UUID
    amount_prepared_oz: float
    expires_at: datetime
    minutes_left: int

    @property
    def title(self) -> str:
        return "Bottle Expiring Soon"

    @property
    def body(self) -> str:
        return f"Your {self.amount_prepared_oz:.1f} oz bottle expires in {self.minutes_left} minutes"


# ─── Pure helpers ─────────────────────────────────────────────────────────────

def job_id(event_id: uuid.UUID) -> str:
    return f"{REMINDER_JOB_PREFIX}{event_id}"


def is_within_quiet_hours(hour: int, start_hour: int, end_hour: int) -> bool:
    if start_hour > end_hour:
        # Wraps midnight, e.g. 22:00–06:00
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


def reminder_time(
    event: Event, refrigerated_expiry_hours: int = 24, warning_minutes: int = 15
) -> Optional[datetime]:
    """Deadline minus the warning window, or None for bottles with no deadline."""
    deadline = bottle_expiry(event, refrigerated_expiry_hours)
    if deadline is None:
        return None
    return deadline - timedelta(minutes=warning_minutes)


def adjust_for_quiet_hours(when: datetime, start_hour: int, end_hour: int, zone: tzinfo) -> datetime:
    """Push `when` to end_hour:00 local if it falls in the quiet window. Returns UTC."""
    local = as_utc(when).astimezone(zone)
    if not is_within_quiet_hours(local.hour, start_hour, end_hour):
        return as_utc(when)
    adjusted = local.replace(hour=end_hour, minute=0, second=0, microsecond=0)
    if adjusted <= local:
        adjusted += timedelta(days=1)
    return as_utc(adjusted)


def bottles_expiring_soon(
    bottles: List[Event],
    now: datetime,
    refrigerated_expiry_hours: int = 24,
    warning_minutes: int = 15,
) -> List[Event]:
    """Bottles with 0 < time left <= warning window."""
    window = timedelta(minutes=warning_minutes)
    soon = []
    for event in bottles:
        remaining = time_until_expiry(event, now, refrigerated_expiry_hours)
        if remaining is not None and timedelta(0) < remaining <= window:
            soon.append(event)
    return soon


def build_scheduler() -> BackgroundScheduler:
    """Create the reminder scheduler (not yet started)."""
    return BackgroundScheduler(timezone="UTC")


# ─── Scheduler wrapper ────────────────────────────────────────────────────────

class BottleReminderScheduler:
    """Schedules and cancels per-bottle expiry reminders."""

    def __init__(
        self,
        notify: Callable[[BottleReminder], None],
        clock: Clock,
        scheduler=None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            notify: Called from the scheduler thread with a BottleReminder.
            clock: Used to skip reminders whose time has already passed.
            scheduler: APScheduler instance; build_scheduler() if omitted.
            settings: Quiet hours and warning window; get_settings() if omitted.
        """
        self.notify = notify
        self.clock = clock
        self.scheduler = scheduler if scheduler is not None else build_scheduler()
        self.settings = settings or get_settings()

    def schedule(self, event: Event, refrigerated_expiry_hours: int = 24) -> Optional[datetime]:
        """
        (Re)schedule the reminder for a bottle.

        Returns:
            The UTC fire time, or None if the bottle has no deadline or the
            reminder time has already passed.
        """
        self.cancel(event)
        if event.feed is None:
            return None

        warning_minutes = self.settings.expiry_warning_minutes
        when = reminder_time(event, refrigerated_expiry_hours, warning_minutes)
        if when is None:
            return None

        if self.settings.quiet_hours_enabled:
            when = adjust_for_quiet_hours(
                when,
                self.settings.quiet_hours_start,
                self.settings.quiet_hours_end,
                event.start_time.zone,
            )

        if when <= self.clock.now():
            logger.info("Reminder for bottle %s already due; not scheduling", event.id)
            return None

        deadline = bottle_expiry(event, refrigerated_expiry_hours)
        reminder = BottleReminder(
            event_id=event.id,
            subject_id=event.subject_id,
            amount_prepared_oz=event.feed.amount_prepared_oz,
            expires_at=deadline,
            minutes_left=max(0, int((deadline - when).total_seconds() // 60)),
        )
        self.scheduler.add_job(
            self.notify,
            trigger="date",
            run_date=when,
            id=job_id(event.id),
            replace_existing=True,
            args=[reminder],
        )
        logger.info("Scheduled expiry reminder for bottle %s at %s", event.id, when.isoformat())
        return when

    def cancel(self, event: Event) -> bool:
        """Drop the bottle's pending reminder. Returns False if there was none."""
        try:
            self.scheduler.remove_job(job_id(event.id))
        except JobLookupError:
            return False
        return True

    def cancel_all(self) -> int:
        ids = self.pending()
        for pending_id in ids:
            self.scheduler.remove_job(pending_id)
        return len(ids)

    def pending(self) -> List[str]:
        return [job.id for job in self.scheduler.get_jobs() if job.id.startswith(REMINDER_JOB_PREFIX)]
