"""
Validation error taxonomy.

    ValidationError
    ├── ConflictError         expected business state; caller can offer a fix
    │   ├── SleepAlreadyActive
    │   └── FeedingAlreadyActive
    └── InvariantViolation    caller or stale-state error; shown, never corrected
        ├── WrongEventCategory
        ├── EventAlreadyEnded
        ├── BottleExpired
        ├── InvalidAmount
        └── InvalidTimeRange

Store failures are not in this tree: see babylog.db.errors.
"""
from typing import Optional

from babylog.models.timestamp import EventTimestamp, format_duration


class ValidationError(Exception):
    """Base class. `recovery_suggestion` is user-facing and may be None."""

    recovery_suggestion: Optional[str] = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConflictError(ValidationError):
    """Another session is already running. Carries enough to render a choice."""

    activity = "busy"

    def __init__(self, started_at: EventTimestamp, duration_seconds: int):
        self.started_at = started_at
        self.duration_seconds = int(duration_seconds)
        super().__init__(
            f"Baby is currently {self.activity} ({format_duration(self.duration_seconds)})"
        )


class SleepAlreadyActive(ConflictError):
    activity = "sleeping"
    recovery_suggestion = "End the current sleep before starting a new one"


class FeedingAlreadyActive(ConflictError):
    activity = "feeding"
    recovery_suggestion = "Finish or discard the current feeding first"


class InvariantViolation(ValidationError):
    pass


class WrongEventCategory(InvariantViolation):
    def __init__(self, message: str = "Invalid event type for this operation"):
        super().__init__(message)


class EventAlreadyEnded(InvariantViolation):
    def __init__(self, message: str = "This event has already ended"):
        super().__init__(message)


class BottleExpired(InvariantViolation):
    recovery_suggestion = "Discard this bottle and prepare a new one"

    def __init__(self, message: str = "This bottle has expired"):
        super().__init__(message)


class InvalidAmount(InvariantViolation):
    def __init__(self, message: str = "Invalid amount entered"):
        super().__init__(message)


class InvalidTimeRange(InvariantViolation):
    def __init__(self, message: str = "End time is earlier than start time"):
        super().__init__(message)
