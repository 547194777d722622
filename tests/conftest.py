"""Shared pytest fixtures for eventhub."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventhub import api, database, storage, sweep
from eventhub.models import Base
from eventhub.reconcile import LifecycleReconciler
from eventhub.service import EventLifecycleService


class FakeClock:
    """Controllable stand-in for ``utcnow``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingWriter:
    """Phase writer that only remembers what it was asked to persist."""

    def __init__(self) -> None:
        self.intents = []

    def submit(self, intent) -> bool:
        self.intents.append(intent)
        return True


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = database.enable_sqlite_savepoints(
        create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    sweep.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield
    database.SessionLocal.remove()


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture()
def writer():
    return RecordingWriter()


@pytest.fixture()
def service(session, clock, writer):
    reconciler = LifecycleReconciler(writer=writer, clock=clock)
    return EventLifecycleService(session, reconciler=reconciler, clock=clock)


def event_fields(clock: FakeClock, **overrides) -> dict:
    """Complete fields for an event starting an hour after ``clock``."""
    start = clock() + timedelta(hours=1)
    fields = {
        "name": "Spring Hackathon",
        "organizer_name": "Robotics Club",
        "description": "Two days of building things.",
        "start_at": start,
        "end_at": start + timedelta(days=2),
        "location": "Main Hall",
        "images": ["https://img.example.com/poster.png"],
    }
    fields.update(overrides)
    return fields


@pytest.fixture()
def fields(clock):
    """Factory for complete event fields relative to the fake clock."""

    def _fields(**overrides) -> dict:
        return event_fields(clock, **overrides)

    return _fields


@pytest.fixture()
def make_event(service, fields):
    """Create an event owned by ``owner-1`` and return its record."""

    def _make(creator_id: str = "owner-1", **overrides):
        return service.create(creator_id, fields(**overrides))

    return _make
