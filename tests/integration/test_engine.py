"""Tests for the shared engine and session helper."""
from unittest.mock import patch

import pytest
from sqlalchemy import inspect
from sqlmodel import Session

import babylog.db.engine as engine_module
from babylog.db.engine import get_engine, get_session


@pytest.fixture(autouse=True)
def reset_engine():
    engine_module._engine = None
    yield
    engine_module._engine = None


def test_engine_creates_tables():
    with patch("babylog.db.engine.get_settings") as mock_settings:
        mock_settings.return_value.database_url = "sqlite://"
        engine = get_engine()
    tables = set(inspect(engine).get_table_names())
    assert {"eventrecord", "babyrecord"} <= tables


def test_engine_is_cached():
    with patch("babylog.db.engine.get_settings") as mock_settings:
        mock_settings.return_value.database_url = "sqlite://"
        assert get_engine() is get_engine()


def test_session_bound_to_engine():
    with patch("babylog.db.engine.get_settings") as mock_settings:
        mock_settings.return_value.database_url = "sqlite://"
        session = next(get_session())
    assert isinstance(session, Session)
    assert session.get_bind() is engine_module._engine
