"""
Tool: Calendar Sync
Purpose: Decide between cache and provider, fetch, reconcile, report failures

Single calendar:
    stale (never synced, or last sync older than the TTL) -> fetch from the
    provider and replace the cached window; on failure keep serving whatever
    is cached and report the error next to it.

All calendars:
    every enabled calendar is synced concurrently; one failure never cancels
    or blocks the others.

Read path:
    get_events_for_range() refreshes stale calendars, reads the cache and
    returns the merged events sorted by start time, plus per-calendar errors.

Usage:
    sync = CalendarSync(repository, token_manager)
    summary = await sync.sync_all()
    read = await sync.get_events_for_today()
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from dayline.config import CalendarSource, DaylineConfig, load_config
from dayline.errors import AppError, Result, SyncErrorCode
from dayline.event_cache import EventRepository
from dayline.logging_config import get_logger
from dayline.models import Event, EventSource, TimeRange, isoformat, today_range, utc_now, week_range
from dayline.oauth_manager import TokenManager
from dayline.providers.base import CalendarProvider
from dayline.providers.google_calendar import GoogleCalendarProvider
from dayline.providers.ical_feed import ICalFeedProvider

logger = get_logger(__name__)

CACHE_TTL = timedelta(hours=1)


@dataclass
class CalendarSyncResult:
    """Outcome of syncing one calendar."""

    calendar_id: str
    name: str
    success: bool
    event_count: int = 0
    from_cache: bool = False
    error: AppError | None = None


@dataclass
class SyncAllResult:
    """Aggregate outcome of a bulk sync."""

    success_count: int
    total_count: int
    error_calendars: list[CalendarSyncResult] = field(default_factory=list)
    synced_at: datetime = field(default_factory=utc_now)

    @property
    def reauth_accounts(self) -> list[str]:
        """Accounts whose grant is no longer usable."""
        accounts = []
        for failed in self.error_calendars:
            if failed.error and failed.error.requires_reauth and failed.error.account:
                if failed.error.account not in accounts:
                    accounts.append(failed.error.account)
        return accounts

    def to_dict(self) -> dict[str, Any]:
        return {
            "successCount": self.success_count,
            "totalCount": self.total_count,
            "errorCalendars": [
                {
                    "calendarId": failed.calendar_id,
                    "name": failed.name,
                    "errorMessage": failed.error.message if failed.error else "Unknown error",
                }
                for failed in self.error_calendars
            ],
            "reauthAccounts": self.reauth_accounts,
            "syncedAt": isoformat(self.synced_at),
        }


@dataclass
class EventsReadResult:
    """
    Merged events for a window.

    ``errors`` holds one entry per calendar that could not be refreshed or
    read; the events of the other calendars are still complete.
    """

    events: list[Event]
    errors: list[AppError] = field(default_factory=list)
    last_sync: datetime | None = None

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "events": [e.to_dict() for e in self.events],
            "lastSync": isoformat(self.last_sync) if self.last_sync else None,
        }
        if self.errors:
            d["partial"] = True
            d["errors"] = [e.to_dict() for e in self.errors]
        return d


def _failure(source: CalendarSource, error: AppError) -> CalendarSyncResult:
    return CalendarSyncResult(
        calendar_id=source.id,
        name=source.name,
        success=False,
        error=error if error.calendar_id else error.with_calendar(source.id),
    )


class CalendarSync:
    """
    Sync orchestrator over the configured calendar sources.

    Args:
        repository: Event cache
        token_manager: Token source for OAuth-backed calendars
        config_loader: Returns the current calendar configuration
        provider_factory: Builds a provider for a source (tests inject fakes)
        clock: Current time
        ttl: Maximum cache age before a calendar is refetched
        tz: Zone for all-day events and the today/week windows
        timeout: Per-request timeout in seconds
        window_days: Days before and after now that a sync covers
    """

    def __init__(
        self,
        repository: EventRepository,
        token_manager: TokenManager | None,
        config_loader: Callable[[], DaylineConfig] = load_config,
        provider_factory: Callable[[CalendarSource], CalendarProvider] | None = None,
        clock: Callable[[], datetime] = utc_now,
        ttl: timedelta = CACHE_TTL,
        tz: str = "UTC",
        timeout: float = 10.0,
        window_days: int = 30,
    ):
        self.repository = repository
        self.token_manager = token_manager
        self.config_loader = config_loader
        self.provider_factory = provider_factory or self._default_provider
        self.clock = clock
        self.ttl = ttl
        self.tz = tz
        self.timeout = timeout
        self.window_days = window_days

    # =========================================================================
    # Providers
    # =========================================================================

    def _default_provider(self, source: CalendarSource) -> CalendarProvider:
        if source.type == "google":
            return GoogleCalendarProvider(source.google_account_email, self.token_manager, self.timeout, self.tz)
        return ICalFeedProvider(source.ical_url, source.name, source.id, self.tz, self.timeout)

    @staticmethod
    def _provider_calendar_id(source: CalendarSource) -> str:
        return source.google_calendar_id if source.type == "google" else source.id

    @staticmethod
    def _adopt(events: list[Event], source: CalendarSource) -> list[Event]:
        """Re-home provider events under the configured calendar id and name."""
        return [
            e.replace(
                calendar_id=source.id,
                source=EventSource(
                    type=source.type,
                    calendar_name=source.name,
                    account_email=source.google_account_email,
                ),
            )
            for e in events
        ]

    def default_window(self) -> TimeRange:
        return TimeRange.around(self.clock(), self.window_days, self.tz)

    def _covering_window(self, time_range: TimeRange) -> TimeRange:
        window = self.default_window()
        return TimeRange(min(window.start, time_range.start), max(window.end, time_range.end))

    # =========================================================================
    # Staleness
    # =========================================================================

    def is_stale(self, calendar_id: str) -> Result[bool]:
        """Never synced, or synced more than ``ttl`` ago."""
        last = self.repository.get_last_sync_time(calendar_id)
        if not last.success:
            return Result.fail(last.error)
        if last.value is None:
            return Result.ok(True)
        return Result.ok(self.clock() - last.value > self.ttl)

    # =========================================================================
    # Sync
    # =========================================================================

    def _check_tokens(self, source: CalendarSource) -> AppError | None:
        """Error when the account's tokens are absent or unreadable."""
        account = source.google_account_email
        stored = self.token_manager.get_tokens(account)
        if not stored.success:
            logger.warning("calendar_tokens_unreadable", calendar_id=source.id, code=stored.error.code.value)
            return stored.error
        if stored.value is None:
            logger.warning("calendar_tokens_missing", calendar_id=source.id)
            return AppError(SyncErrorCode.TOKEN_NOT_FOUND, f"No stored tokens for {account}", account=account)
        return None

    async def _sync_source(
        self,
        source: CalendarSource,
        time_range: TimeRange,
        force: bool = False,
    ) -> CalendarSyncResult:
        if not force:
            stale = self.is_stale(source.id)
            if stale.success and not stale.value:
                return CalendarSyncResult(calendar_id=source.id, name=source.name, success=True, from_cache=True)

        if source.type == "google" and self.token_manager is not None:
            missing = self._check_tokens(source)
            if missing is not None:
                return _failure(source, missing)

        provider = self.provider_factory(source)
        logger.info("calendar_sync_started", calendar_id=source.id, provider=provider.provider_name)

        fetched = await provider.get_events(self._provider_calendar_id(source), time_range)
        if not fetched.success:
            logger.warning(
                "calendar_sync_failed",
                calendar_id=source.id,
                code=fetched.error.code.value,
                error=fetched.error.message,
                fallback="cache",
            )
            return _failure(source, fetched.error)

        events = self._adopt(fetched.value, source)
        stored = self.repository.replace_window(source.id, time_range, events)
        if not stored.success:
            logger.warning("calendar_cache_write_failed", calendar_id=source.id, error=stored.error.message)
            return _failure(source, AppError(SyncErrorCode.DB_ERROR, stored.error.message, cause=stored.error))

        stamped = self.repository.set_last_sync_time(source.id, self.clock())
        if not stamped.success:
            # Events are cached; the next read simply refetches
            logger.warning("sync_state_write_failed", calendar_id=source.id, error=stamped.error.message)

        logger.info("calendar_sync_finished", calendar_id=source.id, event_count=len(events))
        return CalendarSyncResult(calendar_id=source.id, name=source.name, success=True, event_count=len(events))

    async def sync_calendar(
        self,
        calendar_id: str,
        force: bool = False,
        time_range: TimeRange | None = None,
    ) -> CalendarSyncResult:
        """Sync one configured calendar; a fresh cache is left alone unless ``force``."""
        source = self.config_loader().find(calendar_id)
        if source is None or not source.enabled:
            return CalendarSyncResult(
                calendar_id=calendar_id,
                name=calendar_id,
                success=False,
                error=AppError(
                    SyncErrorCode.CALENDAR_NOT_FOUND,
                    f"Calendar {calendar_id} is not configured or disabled",
                    calendar_id=calendar_id,
                ),
            )

        window = self._covering_window(time_range) if time_range else self.default_window()
        return await self._sync_source(source, window, force)

    async def sync_all(self, force: bool = True, time_range: TimeRange | None = None) -> SyncAllResult:
        """Sync every enabled calendar concurrently and aggregate the outcomes."""
        sources = self.config_loader().enabled_calendars
        window = self._covering_window(time_range) if time_range else self.default_window()

        outcomes = await asyncio.gather(
            *(self._sync_source(source, window, force) for source in sources),
            return_exceptions=True,
        )

        results: list[CalendarSyncResult] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("calendar_sync_crashed", calendar_id=source.id, error=str(outcome))
                outcome = _failure(
                    source,
                    AppError(SyncErrorCode.PROVIDER_ERROR, f"Unexpected sync failure: {outcome}", cause=outcome),
                )
            results.append(outcome)

        summary = SyncAllResult(
            success_count=sum(1 for r in results if r.success),
            total_count=len(results),
            error_calendars=[r for r in results if not r.success],
            synced_at=self.clock(),
        )
        logger.info(
            "sync_all_finished",
            success_count=summary.success_count,
            total_count=summary.total_count,
            failed=[r.calendar_id for r in summary.error_calendars],
        )
        return summary

    # =========================================================================
    # Read path
    # =========================================================================

    async def _read_calendar(
        self,
        source: CalendarSource,
        time_range: TimeRange,
    ) -> tuple[list[Event], list[AppError]]:
        errors: list[AppError] = []

        stale = self.is_stale(source.id)
        if not stale.success:
            errors.append(stale.error.with_calendar(source.id))
        if not stale.success or stale.value:
            try:
                synced = await self._sync_source(source, self._covering_window(time_range), force=True)
            except Exception as e:
                logger.error("calendar_sync_crashed", calendar_id=source.id, error=repr(e), fallback="cache")
                synced = _failure(
                    source,
                    AppError(SyncErrorCode.PROVIDER_ERROR, f"Unexpected sync failure: {e!r}", cause=e),
                )
            if not synced.success:
                errors.append(synced.error)

        cached = self.repository.find_by_range(time_range, [source.id])
        if not cached.success:
            errors.append(cached.error.with_calendar(source.id))
            return [], errors
        return cached.value, errors

    async def get_events_for_range(self, time_range: TimeRange) -> Result[EventsReadResult]:
        """
        Merged events of every enabled calendar intersecting ``time_range``.

        Fails as a whole only when the event store cannot be opened.
        """
        available = self.repository.check()
        if not available.success:
            return Result.fail(available.error)

        sources = self.config_loader().enabled_calendars
        outcomes = await asyncio.gather(
            *(self._read_calendar(source, time_range) for source in sources),
            return_exceptions=True,
        )

        events: list[Event] = []
        errors: list[AppError] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("calendar_read_crashed", calendar_id=source.id, error=str(outcome))
                errors.append(
                    AppError(
                        SyncErrorCode.PROVIDER_ERROR,
                        f"Unexpected read failure: {outcome}",
                        calendar_id=source.id,
                        cause=outcome,
                    )
                )
                continue
            calendar_events, calendar_errors = outcome
            events.extend(calendar_events)
            errors.extend(calendar_errors)

        events.sort(key=lambda e: (e.start_time, e.end_time, e.title))
        return Result.ok(EventsReadResult(events=events, errors=errors, last_sync=self._latest_sync(sources)))

    def _latest_sync(self, sources: list[CalendarSource]) -> datetime | None:
        states = self.repository.list_sync_states([s.id for s in sources])
        if not states.success or not states.value:
            return None
        return max(state.last_sync_time for state in states.value)

    async def get_events_for_today(self) -> Result[EventsReadResult]:
        return await self.get_events_for_range(today_range(self.tz, self.clock()))

    async def get_events_for_week(self) -> Result[EventsReadResult]:
        return await self.get_events_for_range(week_range(self.tz, self.clock()))
