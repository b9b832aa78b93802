"""Shared test fixtures for dayline tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- A fixed encryption key and secret store
- Event and calendar source factories

Usage:
    def test_something(temp_db):
        # temp_db is automatically cleaned up after the test
        ...
"""

import base64
import os
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from pathlib import Path

import pytest

from dayline.config import CalendarSource, DaylineConfig, save_config
from dayline.event_cache import EventRepository
from dayline.models import Event, EventSource
from dayline.security.vault import SecretStore


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent

FIXED_KEY = bytes(range(32))
FIXED_KEY_B64 = base64.b64encode(FIXED_KEY).decode("ascii")


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


@pytest.fixture
def encryption_key() -> bytes:
    return FIXED_KEY


@pytest.fixture
def secret_store(temp_db: Path, encryption_key: bytes) -> SecretStore:
    return SecretStore(encryption_key, temp_db)


@pytest.fixture
def repository(temp_db: Path) -> EventRepository:
    return EventRepository(temp_db)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Path for a calendar config file (not created)."""
    return tmp_path / "args" / "dayline.yaml"


@pytest.fixture
def write_config(config_path: Path) -> Callable[..., DaylineConfig]:
    """Write calendar sources to config_path and return the config."""

    def _write(*sources: CalendarSource) -> DaylineConfig:
        config = DaylineConfig(calendars=list(sources))
        save_config(config, config_path)
        return config

    return _write


def feed_source(calendar_id: str = "ical-holidays", name: str = "Holidays", **kwargs) -> CalendarSource:
    return CalendarSource(
        id=calendar_id,
        type="ical",
        name=name,
        ical_url=kwargs.pop("ical_url", f"https://example.com/{calendar_id}.ics"),
        **kwargs,
    )


def google_source(
    calendar_id: str = "google-me-primary",
    account: str = "me@example.com",
    name: str = "Work",
    **kwargs,
) -> CalendarSource:
    return CalendarSource(
        id=calendar_id,
        type="google",
        name=name,
        google_account_email=account,
        google_calendar_id=kwargs.pop("google_calendar_id", "primary"),
        **kwargs,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Event Factories
# ─────────────────────────────────────────────────────────────────────────────


def at(hour: int, minute: int = 0, day: int = 26) -> datetime:
    """2026-01-<day> hh:mm UTC"""
    return datetime(2026, 1, day, hour, minute, tzinfo=timezone.utc)


def make_event(
    event_id: str = "evt-1",
    start: datetime | None = None,
    end: datetime | None = None,
    calendar_id: str = "ical-holidays",
    title: str = "Standup",
    all_day: bool = False,
    **kwargs,
) -> Event:
    start = start or at(9)
    end = end or at(10)
    return Event(
        id=event_id,
        calendar_id=calendar_id,
        title=title,
        start_time=start,
        end_time=end,
        all_day=all_day,
        source=kwargs.pop("source", EventSource(type="ical", calendar_name="Holidays")),
        **kwargs,
    )
