"""Shared test fixtures and configuration.

Sets up the environment before any src imports so settings are
deterministic, and provides common fixtures like a temp event DB and an
event factory.
"""

import os

# Patch env vars BEFORE any src imports
os.environ["TIMEZONE"] = "Europe/Madrid"
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("DEFAULT_PAGE_LIMIT", "50")
os.environ.setdefault("MAX_PAGE_LIMIT", "500")

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

MADRID = ZoneInfo("Europe/Madrid")

USER_ID = "aaaaaaaaaaaaaaaaaaaaaaaa"
OTHER_USER_ID = "bbbbbbbbbbbbbbbbbbbbbbbb"
R1 = "000000000000000000000001"
R2 = "000000000000000000000002"
R3 = "000000000000000000000003"


def local(*args) -> datetime:
    """Aware datetime in the configured test zone."""
    return datetime(*args, tzinfo=MADRID)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_calendar.db")


@pytest.fixture
def event_db(tmp_db_path):
    """Return an EventDB instance backed by a temp file."""
    from src.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def make_event():
    """Factory for valid CalendarEvent objects; keyword args override fields."""
    from src.data.models import CalendarEvent

    def _make(**overrides):
        data = {
            "title": "Team meeting",
            "start_date": local(2024, 1, 1, 10, 0),
            "end_date": local(2024, 1, 1, 11, 0),
            "event_type": "meeting",
            "created_by": USER_ID,
        }
        data.update(overrides)
        return CalendarEvent(**data)

    return _make
