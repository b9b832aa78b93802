"""
Tool: Google Calendar Provider
Purpose: Read Google Calendar lists and events for an OAuth-connected account

Implements the CalendarProvider interface. Every request first asks the
TokenManager for a token valid for at least five more minutes.

Usage:
    from dayline.providers.google_calendar import GoogleCalendarProvider

    provider = GoogleCalendarProvider("me@example.com", token_manager)
    calendars = await provider.list_calendars()
    events = await provider.get_events("primary", TimeRange(start, end))

Dependencies:
    - aiohttp (pip install aiohttp)
"""

import logging
from datetime import date
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import aiohttp

from dayline.errors import Result, api_error, auth_expired, network_error, parse_error
from dayline.models import Event, EventSource, ProviderCalendar, TimeRange, all_day_bounds, isoformat, parse_time
from dayline.providers.base import CalendarProvider

if TYPE_CHECKING:
    from dayline.oauth_manager import TokenManager

logger = logging.getLogger(__name__)


# Google API endpoints
CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"

DEFAULT_TITLE = "(No title)"
MAX_PAGES = 50


class GoogleCalendarProvider(CalendarProvider):
    """
    Google Calendar for one account.

    401 and 403 responses mean the grant is no longer usable and are reported
    as AUTH_EXPIRED for the account; other non-2xx statuses are API_ERROR.
    """

    def __init__(self, account: str, tokens: "TokenManager", timeout: float = 10.0, tz: str = "UTC"):
        self.account = account
        self.tokens = tokens
        self.timeout = timeout
        self.tz = tz

    @property
    def provider_name(self) -> str:
        return "google"

    async def _make_request(self, url: str, access_token: str, params: dict | None = None) -> tuple[int, dict[str, Any]]:
        """GET ``url`` and return (status, JSON body or {})."""
        headers = {"Authorization": f"Bearer {access_token}"}
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers=headers, params=params) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = {}
                return resp.status, data if isinstance(data, dict) else {}

    async def _get_all_pages(self, url: str, params: dict[str, str]) -> Result[list[dict]]:
        """Follow nextPageToken and collect every ``items`` entry."""
        fresh = await self.tokens.ensure_fresh_token(self.account)
        if not fresh.success:
            return Result.fail(fresh.error)
        access_token = fresh.value.access_token

        items: list[dict] = []
        page_params = dict(params)
        for _ in range(MAX_PAGES):
            try:
                status, data = await self._make_request(url, access_token, page_params)
            except (aiohttp.ClientError, TimeoutError) as e:
                return Result.fail(network_error(f"Google Calendar request failed: {e}", cause=e))

            if status in (401, 403):
                return Result.fail(auth_expired(self.account, f"Google Calendar returned HTTP {status}"))
            if not 200 <= status < 300:
                error = data.get("error")
                error_msg = error.get("message", f"HTTP {status}") if isinstance(error, dict) else f"HTTP {status}"
                return Result.fail(api_error(f"Google Calendar error: {error_msg}", status))

            items.extend(data.get("items", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            page_params["pageToken"] = page_token
        else:
            logger.warning("Stopped paging %s after %d pages", url, MAX_PAGES)

        return Result.ok(items)

    # =========================================================================
    # Calendar Operations
    # =========================================================================

    async def list_calendars(self) -> Result[list[ProviderCalendar]]:
        url = f"{CALENDAR_API_BASE}/users/me/calendarList"
        result = await self._get_all_pages(url, {})
        if not result.success:
            return Result.fail(result.error)

        calendars = [
            ProviderCalendar(
                id=item["id"],
                name=item.get("summaryOverride") or item.get("summary") or item["id"],
                primary=bool(item.get("primary", False)),
                color=item.get("backgroundColor"),
            )
            for item in result.value
            if item.get("id")
        ]
        return Result.ok(calendars)

    async def get_events(self, calendar_id: str, time_range: TimeRange) -> Result[list[Event]]:
        """Events in the range, recurring series expanded by the API."""
        params = {
            "timeMin": isoformat(time_range.start),
            "timeMax": isoformat(time_range.end),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": "250",
        }

        url = f"{CALENDAR_API_BASE}/calendars/{quote(calendar_id, safe='')}/events"
        result = await self._get_all_pages(url, params)
        if not result.success:
            return Result.fail(result.error)

        events = []
        for item in result.value:
            if item.get("status") == "cancelled":
                continue
            try:
                events.append(self._parse_calendar_event(item, calendar_id))
            except (KeyError, ValueError) as e:
                return Result.fail(parse_error(f"Malformed event {item.get('id', '?')}: {e}", cause=e))

        logger.debug("Fetched %d events from %s/%s", len(events), self.account, calendar_id)
        return Result.ok(events)

    def _parse_calendar_event(self, data: dict, calendar_id: str) -> Event:
        """Parse a Google Calendar event into an Event."""
        start_data = data.get("start", {})
        end_data = data.get("end", {})

        all_day = "date" in start_data

        if all_day:
            end_date = end_data.get("date")
            start_time, end_time = all_day_bounds(
                date.fromisoformat(start_data["date"]),
                date.fromisoformat(end_date) if end_date else None,
                self.tz,
            )
        else:
            start_time = parse_time(start_data["dateTime"])
            end_time = parse_time(end_data["dateTime"])

        return Event(
            id=data["id"],
            calendar_id=calendar_id,
            title=data.get("summary") or DEFAULT_TITLE,
            start_time=start_time,
            end_time=end_time,
            all_day=all_day,
            location=data.get("location") or None,
            description=data.get("description") or None,
            source=EventSource(type="google", calendar_name=calendar_id, account_email=self.account),
        )
