"""
Tool: iCal Feed Provider
Purpose: Read events from a public iCal (RFC 5545) URL

Features:
- URL validation (http/https only)
- Feed probing: display name from X-WR-CALNAME plus event count
- Recurring series expanded into occurrences within the requested window
- Date-only events become all-day events bounded by local midnights

Usage:
    from dayline.providers.ical_feed import ICalFeedProvider, probe_feed

    meta = await probe_feed("https://example.com/holidays.ics")
    provider = ICalFeedProvider(url, "Holidays", "ical-holidays")
    events = await provider.get_events("ical-holidays", time_range)

Dependencies:
    - aiohttp (pip install aiohttp)
    - icalendar (pip install icalendar)
    - recurring-ical-events (pip install recurring-ical-events)
"""

import hashlib
import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from urllib.parse import urlparse

import aiohttp
import recurring_ical_events
from icalendar import Calendar

from dayline.errors import Result, invalid_url, network_error, parse_error
from dayline.models import (
    Event,
    EventSource,
    FeedMeta,
    ProviderCalendar,
    TimeRange,
    all_day_bounds,
    ensure_aware,
    to_storage_time,
)
from dayline.providers.base import CalendarProvider

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10.0
DEFAULT_FEED_NAME = "iCal Calendar"
DEFAULT_TITLE = "(No title)"

# Occurrence ids use the UTC start, e.g. "abc@example.com_20260126T093000Z"
OCCURRENCE_FORMAT = "%Y%m%dT%H%M%SZ"


def validate_feed_url(url: str) -> Result[str]:
    """Accept only absolute http:// or https:// URLs."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return Result.fail(invalid_url("Invalid URL format"))

    if parsed.scheme not in ("http", "https"):
        return Result.fail(invalid_url("URL must start with http:// or https://"))
    if not parsed.netloc:
        return Result.fail(invalid_url("Invalid URL format"))
    return Result.ok(url.strip())


async def fetch_feed(url: str, timeout: float = FETCH_TIMEOUT) -> tuple[int, str]:
    """GET a feed and return (status, body text)."""
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.get(url) as resp:
            text = await resp.text(errors="replace")
            return resp.status, text


async def _download(url: str, timeout: float) -> Result[str]:
    try:
        status, text = await fetch_feed(url, timeout)
    except TimeoutError as e:
        return Result.fail(network_error("Timed out fetching the feed", cause=e))
    except aiohttp.ClientError as e:
        return Result.fail(network_error(f"Failed to fetch the feed: {e}", cause=e))

    if not 200 <= status < 300:
        return Result.fail(network_error(f"Failed to fetch the feed: HTTP {status}"))
    return Result.ok(text)


def _load_calendar(text: str) -> Result[Calendar]:
    try:
        return Result.ok(Calendar.from_ical(text))
    except ValueError as e:
        return Result.fail(parse_error("Failed to parse the iCal data", cause=e))


async def probe_feed(url: str, timeout: float = FETCH_TIMEOUT) -> Result[FeedMeta]:
    """
    Validate that ``url`` serves a parseable iCal feed.

    Returns:
        FeedMeta with the calendar's display name and number of VEVENTs
    """
    checked = validate_feed_url(url)
    if not checked.success:
        return Result.fail(checked.error)

    downloaded = await _download(checked.value, timeout)
    if not downloaded.success:
        return Result.fail(downloaded.error)

    loaded = _load_calendar(downloaded.value)
    if not loaded.success:
        return Result.fail(loaded.error)

    cal = loaded.value
    name = str(cal.get("X-WR-CALNAME") or "").strip() or DEFAULT_FEED_NAME
    return Result.ok(FeedMeta(name=name, event_count=len(cal.walk("VEVENT"))))


def _text(component, prop: str) -> str | None:
    value = component.get(prop)
    if value is None:
        return None
    return str(value).strip() or None


def _event_bounds(component, tz: str) -> tuple[datetime, datetime, bool]:
    """(start, end, all_day) for a VEVENT, filling in a missing DTEND."""
    dtstart = component.get("DTSTART")
    if dtstart is None:
        raise ValueError("VEVENT has no DTSTART")
    start = dtstart.dt

    dtend = component.get("DTEND")
    duration = component.get("DURATION")
    if dtend is not None:
        end = dtend.dt
    elif duration is not None:
        end = start + duration.dt
    else:
        end = None

    if isinstance(start, date) and not isinstance(start, datetime):
        end_date = end if isinstance(end, date) and not isinstance(end, datetime) else None
        start_time, end_time = all_day_bounds(start, end_date, tz)
        return start_time, end_time, True

    start_time = ensure_aware(start, tz)
    end_time = ensure_aware(end, tz) if isinstance(end, datetime) else start_time
    return start_time, end_time, False


def parse_feed(
    text: str,
    calendar_id: str,
    calendar_name: str,
    time_range: TimeRange,
    tz: str = "UTC",
) -> Result[list[Event]]:
    """
    Parse iCal text into events intersecting ``time_range``.

    An event is dropped only if it ends before the range starts or starts
    after it ends. Occurrences of a recurring series get the id
    ``<uid>_<UTC start>`` so each is unique within the calendar.
    """
    loaded = _load_calendar(text)
    if not loaded.success:
        return Result.fail(loaded.error)

    # Widen the expansion window by a day; the exact test is applied below
    try:
        components = list(
            recurring_ical_events.of(loaded.value, keep_recurrence_attributes=True).between(
                time_range.start - timedelta(days=1),
                time_range.end + timedelta(days=1),
            )
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        # A VEVENT without DTSTART surfaces here as KeyError
        return Result.fail(parse_error(f"Failed to expand events: {e!r}", cause=e))

    uid_counts = Counter(_text(c, "UID") for c in components)

    events = []
    for component in components:
        try:
            start_time, end_time, all_day = _event_bounds(component, tz)
        except (TypeError, ValueError) as e:
            logger.warning("Skipping malformed VEVENT in %s: %s", calendar_id, e)
            continue

        if end_time < start_time:
            end_time = start_time
        if not time_range.intersects(start_time, end_time):
            continue

        title = _text(component, "SUMMARY") or DEFAULT_TITLE
        uid = _text(component, "UID")
        if not uid:
            digest = hashlib.sha1(f"{title}|{to_storage_time(start_time)}".encode()).hexdigest()[:16]
            uid = f"nouid-{digest}"

        recurring = "RRULE" in component or "RECURRENCE-ID" in component or uid_counts[uid] > 1
        event_id = f"{uid}_{start_time.astimezone(timezone.utc).strftime(OCCURRENCE_FORMAT)}" if recurring else uid

        events.append(
            Event(
                id=event_id,
                calendar_id=calendar_id,
                title=title,
                start_time=start_time,
                end_time=end_time,
                all_day=all_day,
                location=_text(component, "LOCATION"),
                description=_text(component, "DESCRIPTION"),
                source=EventSource(type="ical", calendar_name=calendar_name),
            )
        )

    return Result.ok(events)


class ICalFeedProvider(CalendarProvider):
    """
    A single read-only calendar behind an iCal URL.

    Args:
        url: Feed URL (http or https)
        name: Display name used in event sources
        calendar_id: Configured calendar id the events belong to
        tz: Zone for date-only and floating times
        timeout: Fetch timeout in seconds
    """

    def __init__(self, url: str, name: str, calendar_id: str, tz: str = "UTC", timeout: float = FETCH_TIMEOUT):
        self.url = url
        self.name = name
        self.calendar_id = calendar_id
        self.tz = tz
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "ical"

    async def list_calendars(self) -> Result[list[ProviderCalendar]]:
        # A feed is exactly one calendar
        return Result.ok([ProviderCalendar(id=self.calendar_id, name=self.name)])

    async def get_events(self, calendar_id: str, time_range: TimeRange) -> Result[list[Event]]:
        checked = validate_feed_url(self.url)
        if not checked.success:
            return Result.fail(checked.error)

        downloaded = await _download(checked.value, self.timeout)
        if not downloaded.success:
            return Result.fail(downloaded.error)

        result = parse_feed(downloaded.value, calendar_id or self.calendar_id, self.name, time_range, self.tz)
        if result.success:
            logger.debug("Parsed %d events from feed %s", len(result.value), self.calendar_id)
        return result
