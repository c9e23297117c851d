"""Tests for SleepValidator and FeedingValidator against the SQL store."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from babylog.models.event import DiaperPayload, Event, FeedPayload, SleepPayload
from babylog.models.timestamp import EventTimestamp
from babylog.validation.errors import (
    BottleExpired,
    EventAlreadyEnded,
    FeedingAlreadyActive,
    InvalidAmount,
    SleepAlreadyActive,
    WrongEventCategory,
)
from babylog.validation.feeding import FeedingValidator
from babylog.validation.sleep import SleepValidator

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)  # matches the clock fixture


def make_event(subject_id, payload, minutes_ago: int = 0, ended: bool = False) -> Event:
    start = EventTimestamp.at(NOW - timedelta(minutes=minutes_ago), "UTC")
    event = Event.new(subject_id, uuid.uuid4(), payload, start)
    if ended:
        event.end_time = EventTimestamp.at(NOW, "UTC")
    return event


@pytest.fixture(name="subject_id")
def subject_id_fixture() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture(name="sleep_validator")
def sleep_validator_fixture(event_store, clock) -> SleepValidator:
    return SleepValidator(event_store, clock)


@pytest.fixture(name="feeding_validator")
def feeding_validator_fixture(event_store, clock) -> FeedingValidator:
    return FeedingValidator(event_store, clock)


class TestSleepValidator:
    def test_new_sleep_allowed_when_idle(self, sleep_validator, subject_id):
        sleep_validator.validate_new_sleep(subject_id)

    def test_conflict_carries_start_and_duration(self, sleep_validator, event_store, subject_id):
        active = event_store.create(make_event(subject_id, SleepPayload(), minutes_ago=83))

        with pytest.raises(SleepAlreadyActive) as exc_info:
            sleep_validator.validate_new_sleep(subject_id)

        err = exc_info.value
        assert err.started_at == active.start_time
        assert err.duration_seconds == 83 * 60
        assert err.message == "Baby is currently sleeping (1h 23m)"
        assert err.recovery_suggestion

    def test_ended_sleep_does_not_conflict(self, sleep_validator, event_store, subject_id):
        event_store.create(make_event(subject_id, SleepPayload(), minutes_ago=60, ended=True))
        sleep_validator.validate_new_sleep(subject_id)

    def test_other_baby_does_not_conflict(self, sleep_validator, event_store, subject_id):
        event_store.create(make_event(uuid.uuid4(), SleepPayload(), minutes_ago=10))
        sleep_validator.validate_new_sleep(subject_id)

    def test_deleted_sleep_does_not_conflict(self, sleep_validator, event_store, subject_id):
        event = event_store.create(make_event(subject_id, SleepPayload(), minutes_ago=10))
        event_store.soft_delete(event)
        sleep_validator.validate_new_sleep(subject_id)

    def test_end_sleep_wrong_category(self, sleep_validator, subject_id):
        with pytest.raises(WrongEventCategory):
            sleep_validator.validate_end_sleep(make_event(subject_id, DiaperPayload()))

    def test_end_sleep_already_ended(self, sleep_validator, subject_id):
        with pytest.raises(EventAlreadyEnded):
            sleep_validator.validate_end_sleep(make_event(subject_id, SleepPayload(), 30, ended=True))

    def test_get_active_sleep(self, sleep_validator, event_store, subject_id):
        assert sleep_validator.get_active_sleep(subject_id) is None
        active = event_store.create(make_event(subject_id, SleepPayload(), minutes_ago=5))
        assert sleep_validator.get_active_sleep(subject_id).id == active.id


class TestFeedingValidator:
    def test_feeding_conflict_measured_from_feed_start(self, feeding_validator, event_store, subject_id):
        payload = FeedPayload(
            amount_prepared_oz=4.0,
            feeding_started_at=EventTimestamp.at(NOW - timedelta(minutes=7), "UTC"),
        )
        event_store.create(make_event(subject_id, payload, minutes_ago=40))

        with pytest.raises(FeedingAlreadyActive) as exc_info:
            feeding_validator.validate_feeding_start(subject_id)

        assert exc_info.value.duration_seconds == 7 * 60
        assert exc_info.value.message == "Baby is currently feeding (7m)"

    def test_prepared_bottles_do_not_conflict(self, feeding_validator, event_store, subject_id):
        event_store.create(make_event(subject_id, FeedPayload(amount_prepared_oz=4.0)))
        event_store.create(make_event(subject_id, FeedPayload(amount_prepared_oz=3.0)))
        feeding_validator.validate_feeding_start(subject_id)

    def test_expired_bottle_rejected(self, feeding_validator, subject_id):
        stale = make_event(subject_id, FeedPayload(amount_prepared_oz=4.0), minutes_ago=121)
        with pytest.raises(BottleExpired):
            feeding_validator.validate_bottle_not_expired(stale)

    def test_fresh_refrigerated_bottle_allowed(self, feeding_validator, subject_id):
        bottle = make_event(subject_id, FeedPayload(amount_prepared_oz=4.0, is_refrigerated=True), minutes_ago=300)
        feeding_validator.validate_bottle_not_expired(bottle, 24)

    def test_expiry_check_needs_feed(self, feeding_validator, subject_id):
        with pytest.raises(WrongEventCategory):
            feeding_validator.validate_bottle_not_expired(make_event(subject_id, SleepPayload()))

    @pytest.mark.parametrize("amount", [0.0, 2.5, 4.0])
    def test_finish_amount_in_range(self, feeding_validator, subject_id, amount):
        feeding_validator.validate_finish_feeding(make_event(subject_id, FeedPayload(amount_prepared_oz=4.0)), amount)

    def test_negative_amount(self, feeding_validator, subject_id):
        with pytest.raises(InvalidAmount):
            feeding_validator.validate_finish_feeding(make_event(subject_id, FeedPayload(amount_prepared_oz=4.0)), -0.5)

    def test_amount_above_prepared(self, feeding_validator, subject_id):
        with pytest.raises(InvalidAmount, match="exceeds"):
            feeding_validator.validate_finish_feeding(make_event(subject_id, FeedPayload(amount_prepared_oz=4.0)), 4.5)

    def test_finish_needs_feed(self, feeding_validator, subject_id):
        with pytest.raises(WrongEventCategory):
            feeding_validator.validate_finish_feeding(make_event(subject_id, DiaperPayload()), 1.0)

    def test_prepared_and_expired_queries(self, feeding_validator, event_store, subject_id):
        fresh = event_store.create(make_event(subject_id, FeedPayload(amount_prepared_oz=4.0), minutes_ago=10))
        stale = event_store.create(make_event(subject_id, FeedPayload(amount_prepared_oz=4.0), minutes_ago=180))

        prepared = feeding_validator.get_prepared_bottles(subject_id)
        assert [b.id for b in prepared] == [fresh.id, stale.id]
        assert [b.id for b in feeding_validator.get_expired_bottles(subject_id)] == [stale.id]


class TestNonFiniteAmounts:
    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_finish_rejects_non_finite(self, feeding_validator, subject_id, amount):
        bottle = make_event(subject_id, FeedPayload(amount_prepared_oz=4.0))
        with pytest.raises(InvalidAmount):
            feeding_validator.validate_finish_feeding(bottle, amount)
