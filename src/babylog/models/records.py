"""
SQLModel tables backing the event and baby stores.

Each EventTimestamp is flattened into three columns (UTC instant, zone id,
offset seconds) so the recorded offset survives a round trip untouched.
The payload is stored as tagged JSON (see babylog.models.event).

Datetimes are bound as aware UTC; SQLite hands them back naive, so every
read goes through as_utc().
"""
import uuid
from datetime import date, datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class EventRecord(SQLModel, table=True):
    """One row per logged event, soft-deleted rows included."""

    id: uuid.UUID = Field(primary_key=True)
    subject_id: uuid.UUID = Field(index=True)
    author_id: uuid.UUID
    category: str = Field(index=True)  # "sleep", "eat", "diaper"

    start_time_utc: datetime = Field(index=True)
    start_time_timezone: str
    start_time_offset: int

    # All three NULL while the event is in progress
    end_time_utc: Optional[datetime] = None
    end_time_timezone: Optional[str] = None
    end_time_offset: Optional[int] = None

    payload_json: str
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class BabyRecord(SQLModel, table=True):
    id: uuid.UUID = Field(primary_key=True)
    name: str
    birth_date: date
    primary_caregiver_id: uuid.UUID = Field(index=True)

    # BabySettings, flattened
    default_bottle_size_oz: float = 4.0
    refrigerated_expiry_hours: int = 24
    use_metric_units: bool = False

    created_at: datetime
