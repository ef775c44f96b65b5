"""
Shared pytest fixtures: controllable clock, in-memory store, temporary SQLite file.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import db
from store import EntityStore


class FakeClock:
    """Returns a fixed aware datetime until advanced."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 15, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FakeClock) -> EntityStore:
    """Store without persistence"""
    return EntityStore(clock=clock)


@pytest.fixture
def temp_db(tmp_path: Path, monkeypatch) -> Path:
    """Points db.DB_FILE at a fresh file for the duration of the test"""
    path = tmp_path / "center.db"
    monkeypatch.setattr(db, "DB_FILE", path)
    db.init_db()
    return path
