"""
Next-nap prediction from age norms and the baby's own recent sleep.

Pipeline (all minutes, integer-truncated at each step):
  1. Age bracket lookup → (min, max) wake window
  2. Transition blending: within 7 days after a bracket boundary, mix the
     previous bracket into the current one so the window doesn't jump
  3. Personalization: average wake window over the trailing 14 days of
     sleeps (needs ≥ 5 sleeps of ≥ 20 min; gaps outside 15 min – 8 h ignored)
  4. Clamp the personal average to [0.8·min, 1.2·max] of the age range and
     spread it ±15%
  5. Time of day: ×0.9 before 09:00, ×1.1 from 17:00
  6. Window = last wake + (min, max)

The constants are empirical and kept as-is. Every function below except
WakeWindowPredictor is pure: same inputs, same prediction.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union

from babylog.clock import Clock
from babylog.config import get_settings
from babylog.db.protocols import EventStore
from babylog.models.baby import Baby
from babylog.models.event import Event, EventCategory
from babylog.models.timestamp import EventTimestamp, format_duration

Range = Tuple[int, int]

# (upper bound exclusive, unit, range). Units: "w" = age_days // 7, "m" = age_days // 30
_AGE_BRACKETS = [
    (4, "w", (30, 60)),
    (12, "w", (60, 90)),
    (4, "m", (75, 120)),
    (7, "m", (120, 180)),
    (10, "m", (150, 210)),
    (14, "m", (180, 240)),
    (18, "m", (240, 360)),
]
_OLDEST_RANGE = (300, 420)

TRANSITION_DAYS = (28, 84, 120, 210, 300, 420, 540)
TRANSITION_LENGTH_DAYS = 7

MIN_SLEEP_DURATION = timedelta(minutes=20)
MIN_SLEEPS_FOR_PERSONALIZATION = 5
MIN_WAKE_WINDOW = timedelta(minutes=15)
MAX_WAKE_WINDOW = timedelta(hours=8)
HIGH_CONFIDENCE_DATA_POINTS = 10

CLAMP_LOW = 0.8
CLAMP_HIGH = 1.2
RANGE_SPREAD = 0.15


class Confidence(str, Enum):
    HIGH = "high"
    LEARNING = "learning"

    @property
    def display_text(self) -> str:
        return "High confidence" if self is Confidence.HIGH else "Still learning"


@dataclass
class PersonalizedData:
    avg_minutes: int
    data_points: int  # number of wake windows that went into the average


@dataclass
class NapPrediction:
    predicted_start: datetime
    predicted_end: datetime
    wake_window_minutes: Range
    confidence: Confidence
    based_on_data_points: int
    explanation: str

    def is_active(self, now: datetime) -> bool:
        return self.predicted_start <= now <= self.predicted_end

    def is_future(self, now: datetime) -> bool:
        return now < self.predicted_start


# ─── Age-based defaults ───────────────────────────────────────────────────────

def age_based_range(age_days: int) -> Range:
    weeks = age_days // 7
    months = age_days // 30
    for limit, unit, window in _AGE_BRACKETS:
        value = weeks if unit == "w" else months
        if value < limit:
            return window
    return _OLDEST_RANGE


def blended_age_range(age_days: int) -> Range:
    """
    age_based_range() with a 7-day ramp after each bracket boundary.

    progress = days past boundary / 7
    old weight = 1 - 0.8·progress, new weight = 0.2 + 0.8·progress
    The previous range is the bracket the baby was in a week ago.
    """
    current = age_based_range(age_days)

    progress = None
    for threshold in TRANSITION_DAYS:
        days_past = age_days - threshold
        if 0 <= days_past < TRANSITION_LENGTH_DAYS:
            progress = days_past / TRANSITION_LENGTH_DAYS
            break

    if progress is None:
        return current

    previous = age_based_range(age_days - TRANSITION_LENGTH_DAYS)
    old_weight = 1.0 - progress * 0.8
    new_weight = progress * 0.8 + 0.2
    return (
        int(previous[0] * old_weight + current[0] * new_weight),
        int(previous[1] * old_weight + current[1] * new_weight),
    )


# ─── Personalization ──────────────────────────────────────────────────────────

def qualifying_sleeps(events: List[Event]) -> List[Event]:
    """Finished, undeleted sleeps of at least 20 minutes, oldest first."""
    sleeps = [
        e for e in events
        if e.category is EventCategory.SLEEP
        and not e.is_deleted
        and e.duration_seconds is not None
        and e.duration_seconds >= MIN_SLEEP_DURATION.total_seconds()
    ]
    return sorted(sleeps, key=lambda e: e.start_time.utc)


def wake_windows(sleeps: List[Event]) -> List[timedelta]:
    """Gaps between consecutive sleeps, dropping gaps outside [15 min, 8 h]."""
    windows = []
    for previous, current in zip(sleeps, sleeps[1:]):
        gap = current.start_time.utc - previous.end_time.utc
        if MIN_WAKE_WINDOW <= gap <= MAX_WAKE_WINDOW:
            windows.append(gap)
    return windows


def personalized_wake_window(events: List[Event]) -> Optional[PersonalizedData]:
    """
    Average wake window from an already time-windowed event history.

    Returns None when there are fewer than 5 qualifying sleeps or no usable gap.
    """
    sleeps = qualifying_sleeps(events)
    if len(sleeps) < MIN_SLEEPS_FOR_PERSONALIZATION:
        return None

    windows = wake_windows(sleeps)
    if not windows:
        return None

    avg_seconds = sum(w.total_seconds() for w in windows) / len(windows)
    return PersonalizedData(avg_minutes=int(avg_seconds / 60), data_points=len(windows))


def blend_ranges(age_range: Range, personalized: Optional[PersonalizedData]) -> Range:
    if personalized is None:
        return age_range

    clamped = max(
        int(age_range[0] * CLAMP_LOW),
        min(int(age_range[1] * CLAMP_HIGH), personalized.avg_minutes),
    )
    return (int(clamped * (1 - RANGE_SPREAD)), int(clamped * (1 + RANGE_SPREAD)))


# ─── Time of day ──────────────────────────────────────────────────────────────

def time_of_day_factor(hour: int) -> float:
    if hour < 9:
        return 0.9  # morning wake windows run short
    if hour >= 17:
        return 1.1
    return 1.0


def _wake_instant(last_wake_time: Union[datetime, EventTimestamp]) -> Tuple[datetime, int]:
    """(instant to add offsets to, local hour) for either input form."""
    if isinstance(last_wake_time, EventTimestamp):
        return last_wake_time.utc, last_wake_time.local_datetime.hour
    return last_wake_time, last_wake_time.hour


# ─── Prediction ───────────────────────────────────────────────────────────────

def explain(baby: Baby, now: datetime, personalized: Optional[PersonalizedData]) -> str:
    age = baby.age_display(now)
    if personalized is not None:
        avg = format_duration(personalized.avg_minutes * 60)
        return f"Based on {baby.name}'s age ({age}) and average wake time this week ({avg})"
    return (
        f"Based on typical wake windows for {age}-olds. "
        f"Predictions will improve as we learn {baby.name}'s patterns."
    )


def predict_next_nap(
    baby: Baby,
    last_wake_time: Union[datetime, EventTimestamp],
    sleep_events: List[Event],
    now: datetime,
) -> NapPrediction:
    """
    Predict the next nap window.

    Args:
        baby: Supplies birth date and name.
        last_wake_time: End of the last sleep. A datetime's own clock hour is
            used for the time-of-day factor; an EventTimestamp's recorded
            local hour is.
        sleep_events: Sleep history already limited to the rolling window.
        now: Reference instant for the baby's age.
    """
    age_range = blended_age_range(baby.age_in_days(now))
    personalized = personalized_wake_window(sleep_events)
    min_minutes, max_minutes = blend_ranges(age_range, personalized)

    start, hour = _wake_instant(last_wake_time)
    factor = time_of_day_factor(hour)
    adjusted_min = int(min_minutes * factor)
    adjusted_max = int(max_minutes * factor)

    confidence = (
        Confidence.HIGH
        if personalized is not None and personalized.data_points >= HIGH_CONFIDENCE_DATA_POINTS
        else Confidence.LEARNING
    )

    return NapPrediction(
        predicted_start=start + timedelta(minutes=adjusted_min),
        predicted_end=start + timedelta(minutes=adjusted_max),
        wake_window_minutes=(adjusted_min, adjusted_max),
        confidence=confidence,
        based_on_data_points=personalized.data_points if personalized else 0,
        explanation=explain(baby, now, personalized),
    )


class WakeWindowPredictor:
    """Reads the trailing sleep history from the store and runs predict_next_nap()."""

    def __init__(self, store: EventStore, clock: Clock, rolling_window_days: Optional[int] = None):
        self.store = store
        self.clock = clock
        self.rolling_window_days = rolling_window_days or get_settings().rolling_window_days

    def recent_sleeps(self, subject_id, now: datetime) -> List[Event]:
        start = now - timedelta(days=self.rolling_window_days)
        events = self.store.fetch_events_between(subject_id, start, now)
        return [e for e in events if e.category is EventCategory.SLEEP]

    def predict_next_nap(
        self, baby: Baby, last_wake_time: Union[datetime, EventTimestamp]
    ) -> NapPrediction:
        now = self.clock.now()
        return predict_next_nap(baby, last_wake_time, self.recent_sleeps(baby.id, now), now)
