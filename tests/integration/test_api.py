"""
Integration tests for dayline/api endpoints.

Tests the FastAPI routes against real services with isolated storage:
- /oauth/start and /oauth/callback
- /events
- /calendars, /calendars/feed, /calendars/sync, DELETE /calendars/{id}
- DELETE /accounts/{account}

Remote feeds are mocked at dayline.providers.ical_feed.fetch_feed.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from dayline.api.main import build_services
from dayline.api.routes import STATE_COOKIE, VERIFIER_COOKIE
from dayline.config import DaylineSettings
from dayline.errors import CryptoErrorCode, StartupError
from dayline.models import OAuthTokenSet, today_range, utc_now
from tests.conftest import feed_source, google_source, make_event


pytestmark = pytest.mark.integration

FEED = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example//Test//EN
X-WR-CALNAME:Team Holidays
BEGIN:VEVENT
UID:holiday@example.com
DTSTAMP:20260101T000000Z
DTSTART;VALUE=DATE:20260126
DTEND;VALUE=DATE:20260127
SUMMARY:Holiday
END:VEVENT
END:VCALENDAR
"""


def feed_fetch(status=200, text=FEED):
    return patch("dayline.providers.ical_feed.fetch_feed", AsyncMock(return_value=(status, text)))


# ─────────────────────────────────────────────────────────────────────────────
# Startup Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestStartup:
    """The app refuses to start without a usable encryption key."""

    @pytest.mark.parametrize(
        "key, code",
        [
            (None, CryptoErrorCode.KEY_MISSING),
            ("not base64!", CryptoErrorCode.KEY_INVALID),
            ("c2hvcnQ=", CryptoErrorCode.KEY_INVALID),
        ],
    )
    def test_bad_key(self, temp_db, config_path, key, code):
        settings = DaylineSettings(encryption_key=key, db_path=temp_db, config_path=config_path)

        with pytest.raises(StartupError) as exc_info:
            build_services(settings)

        assert exc_info.value.error.code == code


# ─────────────────────────────────────────────────────────────────────────────
# OAuth Endpoint Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestOAuthEndpoints:
    def test_start_returns_url_and_sets_cookies(self, client):
        response = client.post("/oauth/start")

        assert response.status_code == 200
        data = response.json()
        params = parse_qs(urlparse(data["authUrl"]).query)
        assert params["state"] == [data["state"]]
        assert params["redirect_uri"] == ["http://localhost:8080/oauth/callback"]
        assert response.cookies[VERIFIER_COOKIE] == data["verifier"]
        assert response.cookies[STATE_COOKIE] == data["state"]

    def test_start_without_client_is_401(self, client, services):
        services.token_manager.client_id = None

        response = client.post("/oauth/start")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_REQUIRED"

    def test_callback_with_provider_error(self, client):
        response = client.get("/oauth/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        assert "access_denied" in response.json()["error"]["message"]

    def test_callback_without_code(self, client):
        response = client.get("/oauth/callback")

        assert response.status_code == 400

    def test_callback_without_verifier(self, client):
        response = client.get("/oauth/callback", params={"code": "abc"})

        assert response.status_code == 400
        assert "verifier" in response.json()["error"]["message"]

    def test_callback_state_mismatch(self, client):
        client.post("/oauth/start")

        response = client.get("/oauth/callback", params={"code": "abc", "state": "forged"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_REQUIRED"


# ─────────────────────────────────────────────────────────────────────────────
# Events Endpoint Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestEventsEndpoint:
    def test_no_calendars(self, client):
        response = client.get("/events")

        assert response.status_code == 200
        assert response.json() == {"events": [], "lastSync": None}

    def test_serves_fresh_cache(self, client, services, write_config):
        write_config(feed_source("ical-team", name="Team"))
        start = today_range("UTC").start + timedelta(hours=9)
        services.repository.upsert_many([make_event("standup", start, start + timedelta(hours=1), calendar_id="ical-team")])
        services.repository.set_last_sync_time("ical-team", utc_now())

        with feed_fetch() as fetch:
            response = client.get("/events", params={"range": "today"})

        assert response.status_code == 200
        data = response.json()
        assert [e["id"] for e in data["events"]] == ["standup"]
        event = data["events"][0]
        assert event["calendarId"] == "ical-team"
        assert event["isAllDay"] is False
        assert event["startTime"].endswith("Z")
        assert data["lastSync"] is not None
        assert "partial" not in data
        fetch.assert_not_called()

    def test_unreachable_feed_is_partial(self, client, write_config):
        write_config(feed_source("ical-team", name="Team"))

        with feed_fetch(status=503, text="unavailable"):
            response = client.get("/events", params={"range": "week"})

        assert response.status_code == 200
        data = response.json()
        assert data["events"] == []
        assert data["partial"] is True
        assert data["errors"][0]["calendarId"] == "ical-team"

    def test_invalid_range(self, client):
        response = client.get("/events", params={"range": "month"})

        assert response.status_code == 422


# ─────────────────────────────────────────────────────────────────────────────
# Calendar Endpoint Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestCalendarEndpoints:
    def test_add_feed(self, client):
        with feed_fetch():
            response = client.post("/calendars/feed", json={"url": "https://example.com/team.ics"})

        assert response.status_code == 201
        calendar = response.json()["calendar"]
        assert calendar["id"].startswith("ical-")
        assert calendar["name"] == "Team Holidays"
        assert calendar["icalUrl"] == "https://example.com/team.ics"

        listed = client.get("/calendars").json()["calendars"]
        assert [c["id"] for c in listed] == [calendar["id"]]

    def test_add_feed_invalid_url(self, client):
        response = client.post("/calendars/feed", json={"url": "ftp://example.com/team.ics"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_URL"

    def test_add_feed_unparseable(self, client):
        with feed_fetch(text="<html></html>"):
            response = client.post("/calendars/feed", json={"url": "https://example.com/team.ics", "name": "X"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PARSE_ERROR"

    def test_sync_summary(self, client, write_config):
        write_config(feed_source("ical-a", name="A"), feed_source("ical-b", name="B"))

        with patch(
            "dayline.providers.ical_feed.fetch_feed",
            AsyncMock(side_effect=lambda url, timeout: (200, FEED) if "ical-a" in url else (404, "")),
        ):
            response = client.post("/calendars/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["successCount"] == 1
        assert data["totalCount"] == 2
        assert [c["calendarId"] for c in data["errorCalendars"]] == ["ical-b"]
        assert data["reauthAccounts"] == []
        assert data["syncedAt"].endswith("Z")

    def test_delete_calendar(self, client, write_config):
        write_config(feed_source("ical-a", name="A"))

        response = client.delete("/calendars/ical-a")

        assert response.status_code == 200
        assert response.json() == {"removed": "ical-a"}
        assert client.get("/calendars").json() == {"calendars": []}

    def test_delete_unknown_calendar(self, client):
        response = client.delete("/calendars/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SYNC_CALENDAR_NOT_FOUND"

    def test_delete_account(self, client, services, write_config):
        write_config(
            google_source("google-me-primary", account="me@example.com"),
            google_source("google-me-team", account="me@example.com", google_calendar_id="team"),
            google_source("google-you-primary", account="you@example.com"),
            feed_source("ical-a", name="A"),
        )
        tokens = OAuthTokenSet(access_token="access-1", refresh_token="refresh-1", expires_at=utc_now())
        services.token_manager.save_tokens("me@example.com", tokens)

        with patch.object(services.token_manager, "_post_form", AsyncMock(return_value=(200, {}))) as post:
            response = client.delete("/accounts/me@example.com")

        assert response.status_code == 200
        assert response.json() == {"account": "me@example.com", "removed": ["google-me-primary", "google-me-team"]}
        assert post.call_args.args[1] == {"token": "refresh-1"}
        assert services.token_manager.get_tokens("me@example.com").value is None
        remaining = [c["id"] for c in client.get("/calendars").json()["calendars"]]
        assert remaining == ["google-you-primary", "ical-a"]

    def test_broken_config_is_config_error(self, client, config_path):
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text("calendars: [unclosed\n")

        response = client.post("/calendars/sync")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "SYNC_CONFIG_ERROR"
