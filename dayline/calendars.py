"""
Tool: Calendar Registry
Purpose: Add and remove calendar sources in args/dayline.yaml

Usage:
    result = await add_feed_calendar("https://example.com/holidays.ics")
    register_oauth_calendars("me@example.com", discovered_calendars)
    remove_calendar("ical-lq2m1x-4f9a2c", repository)
    await remove_account("me@example.com", token_manager, repository)
"""

import logging
import re
import secrets
import string
import time
from pathlib import Path

from dayline.config import CalendarSource, DaylineConfig, load_config, save_config
from dayline.errors import AppError, ConfigError, Result, SyncErrorCode
from dayline.event_cache import EventRepository
from dayline.models import ProviderCalendar
from dayline.oauth_manager import TokenManager
from dayline.providers.ical_feed import FETCH_TIMEOUT, probe_feed

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def feed_calendar_id(now_ms: int | None = None) -> str:
    """ical-<base36 millis>-<6 random base36 chars>"""
    stamp = _base36(now_ms if now_ms is not None else int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ical-{stamp}-{suffix}"


def oauth_calendar_id(account: str, provider_calendar_id: str) -> str:
    """google-<email>-<calendar id>, with every non-alphanumeric as '-'."""
    sanitized_email = re.sub(r"[^a-zA-Z0-9]", "-", account)
    sanitized_calendar = re.sub(r"[^a-zA-Z0-9]", "-", provider_calendar_id)
    return f"google-{sanitized_email}-{sanitized_calendar}"


def _load(config_path: Path | None) -> Result[DaylineConfig]:
    try:
        return Result.ok(load_config(config_path))
    except ConfigError as e:
        return Result.fail(AppError(SyncErrorCode.CONFIG_ERROR, str(e), cause=e))


def _save(config: DaylineConfig, config_path: Path | None) -> Result[None]:
    try:
        save_config(config, config_path)
    except ConfigError as e:
        return Result.fail(AppError(SyncErrorCode.CONFIG_ERROR, str(e), cause=e))
    return Result.ok()


def list_calendars(config_path: Path | None = None) -> Result[list[CalendarSource]]:
    loaded = _load(config_path)
    if not loaded.success:
        return Result.fail(loaded.error)
    return Result.ok(list(loaded.value.calendars))


async def add_feed_calendar(
    url: str,
    name: str | None = None,
    config_path: Path | None = None,
    timeout: float = FETCH_TIMEOUT,
) -> Result[CalendarSource]:
    """
    Probe a feed URL and register it as an enabled calendar.

    An explicit ``name`` wins over the feed's own display name.
    """
    url = url.strip()
    probed = await probe_feed(url, timeout)
    if not probed.success:
        return Result.fail(probed.error)

    loaded = _load(config_path)
    if not loaded.success:
        return Result.fail(loaded.error)
    config = loaded.value

    display_name = (name or "").strip() or probed.value.name
    source = CalendarSource(id=feed_calendar_id(), type="ical", name=display_name, ical_url=url)
    config.calendars.append(source)

    saved = _save(config, config_path)
    if not saved.success:
        return Result.fail(saved.error)

    logger.info(f"Added feed calendar {source.id} ({display_name}, {probed.value.event_count} events)")
    return Result.ok(source)


def register_oauth_calendars(
    account: str,
    calendars: list[ProviderCalendar],
    config_path: Path | None = None,
) -> Result[list[CalendarSource]]:
    """Add a source per discovered calendar; ids already configured are skipped."""
    loaded = _load(config_path)
    if not loaded.success:
        return Result.fail(loaded.error)
    config = loaded.value

    existing = {c.id for c in config.calendars}
    added = []
    for calendar in calendars:
        source_id = oauth_calendar_id(account, calendar.id)
        if source_id in existing:
            continue
        source = CalendarSource(
            id=source_id,
            type="google",
            name=calendar.name,
            color=calendar.color if calendar.color and _COLOR_RE.match(calendar.color) else None,
            google_account_email=account,
            google_calendar_id=calendar.id,
        )
        config.calendars.append(source)
        existing.add(source_id)
        added.append(source)

    if added:
        saved = _save(config, config_path)
        if not saved.success:
            return Result.fail(saved.error)
        logger.info(f"Registered {len(added)} calendars for {account}")

    return Result.ok(added)


def remove_calendar(
    calendar_id: str,
    repository: EventRepository,
    config_path: Path | None = None,
) -> Result[CalendarSource]:
    """Drop a source together with its cached events and sync state."""
    loaded = _load(config_path)
    if not loaded.success:
        return Result.fail(loaded.error)
    config = loaded.value

    source = config.find(calendar_id)
    if source is None:
        return Result.fail(
            AppError(SyncErrorCode.CALENDAR_NOT_FOUND, f"Calendar {calendar_id} not found", calendar_id=calendar_id)
        )

    config.calendars = [c for c in config.calendars if c.id != calendar_id]
    saved = _save(config, config_path)
    if not saved.success:
        return Result.fail(saved.error)

    for cleanup in (repository.delete_by_calendar(calendar_id), repository.delete_sync_state(calendar_id)):
        if not cleanup.success:
            logger.warning(f"Removed {calendar_id} but cache cleanup failed: {cleanup.error}")

    logger.info(f"Removed calendar {calendar_id}")
    return Result.ok(source)


async def remove_account(
    account: str,
    token_manager: TokenManager,
    repository: EventRepository,
    config_path: Path | None = None,
) -> Result[list[str]]:
    """Revoke an account's tokens and drop every calendar it backs."""
    revoked = await token_manager.revoke(account)
    if not revoked.success:
        return Result.fail(revoked.error)

    loaded = _load(config_path)
    if not loaded.success:
        return Result.fail(loaded.error)

    removed = []
    for source in loaded.value.calendars:
        if source.type == "google" and source.google_account_email == account:
            result = remove_calendar(source.id, repository, config_path)
            if not result.success:
                return Result.fail(result.error)
            removed.append(source.id)

    return Result.ok(removed)
