"""Baby record and per-baby settings."""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Union

ML_PER_OZ = 29.5735

MIN_REFRIGERATED_EXPIRY_HOURS = 1
MAX_REFRIGERATED_EXPIRY_HOURS = 24


def clamp_expiry_hours(hours: int) -> int:
    return min(MAX_REFRIGERATED_EXPIRY_HOURS, max(MIN_REFRIGERATED_EXPIRY_HOURS, int(hours)))


@dataclass
class BabySettings:
    """
    Caregiver-configurable settings.

    refrigerated_expiry_hours is clamped to [1, 24] here, once; nothing
    downstream re-validates it.
    """

    default_bottle_size_oz: float = 4.0
    refrigerated_expiry_hours: int = 24
    use_metric_units: bool = False

    def __post_init__(self):
        self.refrigerated_expiry_hours = clamp_expiry_hours(self.refrigerated_expiry_hours)

    def display_amount(self, oz: float) -> str:
        if self.use_metric_units:
            return f"{oz * ML_PER_OZ:.0f} ml"
        return f"{oz:.1f} oz"


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass
class Baby:
    name: str
    birth_date: date
    primary_caregiver_id: uuid.UUID
    settings: BabySettings = field(default_factory=BabySettings)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        self.birth_date = _as_date(self.birth_date)

    # ─── Age ──────────────────────────────────────────────────────────────────

    def age_in_days(self, now: Union[date, datetime]) -> int:
        return (_as_date(now) - self.birth_date).days

    def age_in_weeks(self, now: Union[date, datetime]) -> int:
        return self.age_in_days(now) // 7

    def age_in_months(self, now: Union[date, datetime]) -> int:
        """Whole calendar months elapsed since birth."""
        today = _as_date(now)
        months = (today.year - self.birth_date.year) * 12 + (today.month - self.birth_date.month)
        if today.day < self.birth_date.day:
            months -= 1
        return max(0, months)

    def age_display(self, now: Union[date, datetime]) -> str:
        """'3 months', '6 weeks', '1 day'."""
        months = self.age_in_months(now)
        weeks = self.age_in_weeks(now)
        if months >= 2:
            return f"{months} months"
        if weeks >= 1:
            return f"{weeks} {'week' if weeks == 1 else 'weeks'}"
        days = self.age_in_days(now)
        return f"{days} {'day' if days == 1 else 'days'}"

