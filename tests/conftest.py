"""Shared test fixtures."""
import uuid
from datetime import date, datetime, timezone
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from babylog.clock import FixedClock
from babylog.db.baby_store import SqlBabyStore
from babylog.db.event_store import SqlEventStore
from babylog.models.baby import Baby, BabySettings
# Import all models so SQLModel.metadata knows about them
from babylog.models.records import BabyRecord, EventRecord  # noqa: F401

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FixedClock:
    """Pinned at 2025-01-15 12:00 UTC; tests advance it explicitly."""
    return FixedClock(NOW)


@pytest.fixture(name="event_store")
def event_store_fixture(engine, clock) -> SqlEventStore:
    return SqlEventStore(engine, clock=clock)


@pytest.fixture(name="baby_store")
def baby_store_fixture(engine) -> SqlBabyStore:
    return SqlBabyStore(engine)


@pytest.fixture(name="baby")
def baby_fixture(baby_store) -> Baby:
    """A persisted 10-week-old."""
    baby = Baby(
        name="Ada",
        birth_date=date(2024, 11, 6),  # 70 days before NOW
        primary_caregiver_id=uuid.uuid4(),
        settings=BabySettings(refrigerated_expiry_hours=24),
        created_at=datetime(2024, 11, 7, tzinfo=timezone.utc),
    )
    return baby_store.create(baby)


@pytest.fixture(name="author_id")
def author_id_fixture() -> uuid.UUID:
    return uuid.uuid4()
