"""SqlBabyStore: BabyStore backed by SQLModel."""
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from babylog.clock import as_utc
from babylog.db.errors import NotFoundError, StoreError
from babylog.models.baby import Baby, BabySettings
from babylog.models.records import BabyRecord


def baby_to_record(baby: Baby) -> BabyRecord:
    record = BabyRecord(
        id=baby.id,
        name=baby.name,
        birth_date=baby.birth_date,
        primary_caregiver_id=baby.primary_caregiver_id,
        created_at=as_utc(baby.created_at),
    )
    _apply_settings(record, baby)
    return record


def _apply_settings(record: BabyRecord, baby: Baby) -> None:
    record.default_bottle_size_oz = baby.settings.default_bottle_size_oz
    record.refrigerated_expiry_hours = baby.settings.refrigerated_expiry_hours
    record.use_metric_units = baby.settings.use_metric_units


def record_to_baby(record: BabyRecord) -> Baby:
    return Baby(
        id=record.id,
        name=record.name,
        birth_date=record.birth_date,
        primary_caregiver_id=record.primary_caregiver_id,
        settings=BabySettings(
            default_bottle_size_oz=record.default_bottle_size_oz,
            refrigerated_expiry_hours=record.refrigerated_expiry_hours,
            use_metric_units=record.use_metric_units,
        ),
        created_at=as_utc(record.created_at),
    )


class SqlBabyStore:
    def __init__(self, engine):
        self.engine = engine

    def create(self, baby: Baby) -> Baby:
        try:
            with Session(self.engine) as s:
                s.add(baby_to_record(baby))
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to save baby {baby.id}") from exc
        return baby

    def fetch(self, baby_id: uuid.UUID) -> Optional[Baby]:
        with Session(self.engine) as s:
            record = s.get(BabyRecord, baby_id)
            return record_to_baby(record) if record else None

    def fetch_first(self) -> Optional[Baby]:
        """Oldest baby on record (single-baby households)."""
        with Session(self.engine) as s:
            record = s.exec(select(BabyRecord).order_by(BabyRecord.created_at)).first()
            return record_to_baby(record) if record else None

    def update(self, baby: Baby) -> Baby:
        """Name, birth date and settings are mutable; id and caregiver are not."""
        try:
            with Session(self.engine) as s:
                record = s.get(BabyRecord, baby.id)
                if record is None:
                    raise NotFoundError(f"Baby {baby.id} not found")
                record.name = baby.name
                record.birth_date = baby.birth_date
                _apply_settings(record, baby)
                s.add(record)
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to save baby {baby.id}") from exc
        return baby
