"""
Data structures for calendar sources, events and OAuth tokens.

Usage:
    from dayline.models import Event, EventSource, TimeRange, OAuthTokenSet

All datetimes are timezone-aware. Storage uses a fixed-width UTC format so
that ISO strings compare in time order.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo


STORAGE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime, tz: str = "UTC") -> datetime:
    """Attach ``tz`` to a naive datetime; aware values pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=ZoneInfo(tz))
    return value


def to_storage_time(value: datetime) -> str:
    return ensure_aware(value).astimezone(timezone.utc).strftime(STORAGE_TIME_FORMAT)


def parse_time(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(value))


def isoformat(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2026-01-26T00:30:00.000Z"""
    utc = ensure_aware(value).astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class TimeRange:
    """A time window [start, end]."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError("TimeRange end must not precede start")

    def intersects(self, start: datetime, end: datetime) -> bool:
        """An interval is outside only if it ends before start or starts after end."""
        return not (end < self.start or start > self.end)

    @classmethod
    def around(cls, now: datetime, days: int, tz: str = "UTC") -> "TimeRange":
        """Midnight ``days`` days before ``now`` to the end of the day ``days`` after."""
        local = ensure_aware(now).astimezone(ZoneInfo(tz))
        start = datetime.combine(local.date() - timedelta(days=days), time.min, tzinfo=ZoneInfo(tz))
        end = datetime.combine(local.date() + timedelta(days=days), time.max, tzinfo=ZoneInfo(tz))
        return cls(start, end)


def today_range(tz: str = "UTC", now: datetime | None = None) -> TimeRange:
    """Local midnight today to local midnight tomorrow."""
    local = (now or utc_now()).astimezone(ZoneInfo(tz))
    start = datetime.combine(local.date(), time.min, tzinfo=ZoneInfo(tz))
    return TimeRange(start, start + timedelta(days=1))


def week_range(tz: str = "UTC", now: datetime | None = None) -> TimeRange:
    """Monday 00:00 of the current week to the following Monday 00:00."""
    local = (now or utc_now()).astimezone(ZoneInfo(tz))
    monday = local.date() - timedelta(days=local.weekday())
    start = datetime.combine(monday, time.min, tzinfo=ZoneInfo(tz))
    return TimeRange(start, start + timedelta(days=7))


def all_day_bounds(start: date, end: date | None, tz: str = "UTC") -> tuple[datetime, datetime]:
    """Convert date-only boundaries to local midnights; a missing end means one day."""
    zone = ZoneInfo(tz)
    end = end if end and end > start else start + timedelta(days=1)
    return (
        datetime.combine(start, time.min, tzinfo=zone),
        datetime.combine(end, time.min, tzinfo=zone),
    )


@dataclass(frozen=True)
class EventSource:
    """Where an event came from."""

    type: str  # google, ical
    calendar_name: str = ""
    account_email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type, "calendarName": self.calendar_name}
        if self.account_email:
            d["accountEmail"] = self.account_email
        return d


@dataclass(frozen=True)
class Event:
    """
    Normalized calendar event.

    Identified by (id, calendar_id); replaced wholesale on every sync.
    """

    id: str
    calendar_id: str
    title: str
    start_time: datetime
    end_time: datetime
    source: EventSource
    all_day: bool = False
    location: str | None = None
    description: str | None = None

    def __post_init__(self):
        if self.end_time < self.start_time:
            raise ValueError(f"Event {self.id} ends before it starts")

    @property
    def key(self) -> tuple[str, str]:
        return (self.id, self.calendar_id)

    def replace(self, **changes: Any) -> "Event":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """JSON shape for the HTTP surface; null optional fields are omitted."""
        d: dict[str, Any] = {
            "id": self.id,
            "calendarId": self.calendar_id,
            "title": self.title,
            "startTime": isoformat(self.start_time),
            "endTime": isoformat(self.end_time),
            "isAllDay": self.all_day,
            "source": self.source.to_dict(),
        }
        if self.location:
            d["location"] = self.location
        if self.description:
            d["description"] = self.description
        return d


@dataclass(frozen=True)
class ProviderCalendar:
    """A calendar as listed by a provider."""

    id: str
    name: str
    primary: bool = False
    color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "name": self.name, "primary": self.primary}
        if self.color:
            d["color"] = self.color
        return d


@dataclass
class OAuthTokenSet:
    """Access + refresh token pair for one external account."""

    access_token: str
    refresh_token: str
    expires_at: datetime

    def is_expired(self, now: datetime | None = None, buffer: timedelta = timedelta(minutes=5)) -> bool:
        """True when ``now`` is within ``buffer`` of expiry (or past it)."""
        return (now or utc_now()) + buffer >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": isoformat(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OAuthTokenSet":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=parse_time(data["expires_at"]),
        )


@dataclass(frozen=True)
class SyncState:
    """Last successful sync of one calendar."""

    calendar_id: str
    last_sync_time: datetime


@dataclass
class FeedMeta:
    """What a feed probe learned about a remote calendar."""

    name: str
    event_count: int = 0
