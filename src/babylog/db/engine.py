"""SQLModel engine singleton and session helper."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from babylog.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it (and the tables) on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False  # stores are shared across threads
        _engine = create_engine(settings.database_url, connect_args=connect_args)
        # Import all models so metadata is populated before create_all
        from babylog.models.records import BabyRecord, EventRecord  # noqa
        SQLModel.metadata.create_all(_engine)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """Yield a session bound to the shared engine."""
    with Session(get_engine()) as session:
        yield session
