"""Tests for dayline/models.py"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from dayline.models import (
    EventSource,
    OAuthTokenSet,
    TimeRange,
    all_day_bounds,
    isoformat,
    parse_time,
    today_range,
    week_range,
)
from tests.conftest import at, make_event


class TestTimeRange:
    """Tests for TimeRange."""

    def test_rejects_inverted(self):
        with pytest.raises(ValueError):
            TimeRange(at(10), at(9))

    def test_intersects_including_touching(self):
        day = TimeRange(at(0), at(0, day=27))

        assert day.intersects(at(9), at(10))
        assert day.intersects(at(22, day=25), at(0))
        assert day.intersects(at(0, day=27), at(1, day=27))
        assert not day.intersects(at(20, day=25), at(21, day=25))

    def test_today_in_zone(self):
        # 23:30 UTC on the 26th is already the 27th in Tokyo
        today = today_range("Asia/Tokyo", at(23, 30))

        assert today.start == datetime(2026, 1, 27, tzinfo=ZoneInfo("Asia/Tokyo"))
        assert today.end - today.start == timedelta(days=1)

    def test_week_starts_monday(self):
        # 2026-01-28 is a Wednesday
        week = week_range("UTC", at(12, day=28))

        assert week.start == at(0, day=26)
        assert week.end == at(0, day=26) + timedelta(days=7)


class TestTimeFormatting:
    def test_isoformat_is_utc_milliseconds(self):
        value = datetime(2026, 1, 26, 9, 30, 15, 123456, tzinfo=ZoneInfo("Asia/Tokyo"))

        assert isoformat(value) == "2026-01-26T00:30:15.123Z"

    def test_parse_time_accepts_z(self):
        assert parse_time("2026-01-26T09:00:00Z") == at(9)
        assert parse_time("2026-01-26T09:00:00.000Z") == at(9)

    def test_all_day_bounds(self):
        start, end = all_day_bounds(date(2026, 1, 26), None)

        assert start == at(0)
        assert end == at(0, day=27)


class TestEvent:
    def test_rejects_end_before_start(self):
        with pytest.raises(ValueError):
            make_event(start=at(10), end=at(9))

    def test_to_dict_omits_missing_optionals(self):
        data = make_event().to_dict()

        assert data == {
            "id": "evt-1",
            "calendarId": "ical-holidays",
            "title": "Standup",
            "startTime": "2026-01-26T09:00:00.000Z",
            "endTime": "2026-01-26T10:00:00.000Z",
            "isAllDay": False,
            "source": {"type": "ical", "calendarName": "Holidays"},
        }

    def test_to_dict_includes_present_optionals(self):
        event = make_event(
            location="Room 4",
            source=EventSource(type="google", calendar_name="Work", account_email="me@example.com"),
        )

        data = event.to_dict()

        assert data["location"] == "Room 4"
        assert "description" not in data
        assert data["source"]["accountEmail"] == "me@example.com"


class TestOAuthTokenSet:
    """Tests for OAuthTokenSet expiry and serialization."""

    def test_expiry_buffer(self):
        now = at(9)
        tokens = OAuthTokenSet("a", "r", now + timedelta(minutes=6))

        assert tokens.is_expired(now) is False
        assert tokens.is_expired(now + timedelta(minutes=1)) is True

    def test_dict_round_trip(self):
        tokens = OAuthTokenSet("a", "r", datetime(2026, 1, 26, 9, 0, tzinfo=timezone.utc))

        assert OAuthTokenSet.from_dict(tokens.to_dict()) == tokens
