"""
Tool: Event Cache
Purpose: Local SQLite cache of calendar events and per-calendar sync state

Events are keyed by (id, calendar_id); re-inserting the same key replaces the
row, so repeated syncs never duplicate events. Range reads return every event
that intersects the window: start_time <= range.end AND end_time >= range.start.

Usage:
    from dayline.event_cache import EventRepository

    repo = EventRepository()
    repo.upsert_many(events)
    result = repo.find_by_range(time_range, calendar_ids=["work"])
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from dayline import get_connection
from dayline.errors import Result, db_query_error, db_write_error
from dayline.models import Event, EventSource, SyncState, TimeRange, parse_time, to_storage_time

logger = logging.getLogger(__name__)


_UPSERT_SQL = """
    INSERT INTO calendar_events (
        id, calendar_id, title, start_time, end_time, is_all_day,
        location, description, source_type, source_calendar_name,
        source_account_email, updated_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
    ON CONFLICT(id, calendar_id) DO UPDATE SET
        title = excluded.title,
        start_time = excluded.start_time,
        end_time = excluded.end_time,
        is_all_day = excluded.is_all_day,
        location = excluded.location,
        description = excluded.description,
        source_type = excluded.source_type,
        source_calendar_name = excluded.source_calendar_name,
        source_account_email = excluded.source_account_email,
        updated_at = datetime('now')
"""


def _event_params(event: Event) -> tuple:
    return (
        event.id,
        event.calendar_id,
        event.title,
        to_storage_time(event.start_time),
        to_storage_time(event.end_time),
        1 if event.all_day else 0,
        event.location,
        event.description,
        event.source.type,
        event.source.calendar_name,
        event.source.account_email,
    )


def _row_to_event(row: sqlite3.Row) -> Event:
    return Event(
        id=row["id"],
        calendar_id=row["calendar_id"],
        title=row["title"],
        start_time=parse_time(row["start_time"]),
        end_time=parse_time(row["end_time"]),
        all_day=bool(row["is_all_day"]),
        location=row["location"],
        description=row["description"],
        source=EventSource(
            type=row["source_type"],
            calendar_name=row["source_calendar_name"],
            account_email=row["source_account_email"],
        ),
    )


class EventRepository:
    """Event and sync-state persistence; every method returns a Result."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path

    def check(self) -> Result[None]:
        """Fail if the database cannot be opened at all."""
        try:
            conn = get_connection(self.db_path)
            conn.close()
        except (sqlite3.Error, OSError) as e:
            return Result.fail(db_query_error(f"Event store is unavailable: {e}", cause=e))
        return Result.ok()

    # =========================================================================
    # Events
    # =========================================================================

    def upsert_many(self, events: list[Event]) -> Result[int]:
        """Insert or replace events in a single transaction."""
        if not events:
            return Result.ok(0)

        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    conn.executemany(_UPSERT_SQL, [_event_params(e) for e in events])
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to save {len(events)} events: {e}", cause=e))

        return Result.ok(len(events))

    def replace_window(self, calendar_id: str, time_range: TimeRange, events: list[Event]) -> Result[int]:
        """
        Make the cached events of one calendar within a window match ``events``.

        Cached events of that calendar intersecting the window are removed and
        the fresh set inserted, atomically. Events removed upstream disappear.
        """
        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    conn.execute(
                        """
                        DELETE FROM calendar_events
                        WHERE calendar_id = ? AND start_time <= ? AND end_time >= ?
                    """,
                        (calendar_id, to_storage_time(time_range.end), to_storage_time(time_range.start)),
                    )
                    conn.executemany(_UPSERT_SQL, [_event_params(e) for e in events])
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to replace events for {calendar_id}: {e}", cause=e))

        return Result.ok(len(events))

    def find_by_range(self, time_range: TimeRange, calendar_ids: list[str] | None = None) -> Result[list[Event]]:
        """Events intersecting ``time_range``, ordered by start time."""
        query = "SELECT * FROM calendar_events WHERE start_time <= ? AND end_time >= ?"
        params: list = [to_storage_time(time_range.end), to_storage_time(time_range.start)]

        if calendar_ids is not None:
            if not calendar_ids:
                return Result.ok([])
            placeholders = ",".join("?" * len(calendar_ids))
            query += f" AND calendar_id IN ({placeholders})"
            params.extend(calendar_ids)

        query += " ORDER BY start_time ASC, end_time ASC"

        try:
            conn = get_connection(self.db_path)
            try:
                rows = conn.execute(query, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_query_error(f"Failed to read cached events: {e}", cause=e))

        return Result.ok([_row_to_event(row) for row in rows])

    def find_by_calendar(self, calendar_id: str) -> Result[list[Event]]:
        try:
            conn = get_connection(self.db_path)
            try:
                rows = conn.execute(
                    "SELECT * FROM calendar_events WHERE calendar_id = ? ORDER BY start_time ASC",
                    (calendar_id,),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_query_error(f"Failed to read events for {calendar_id}: {e}", cause=e))

        return Result.ok([_row_to_event(row) for row in rows])

    def delete_by_calendar(self, calendar_id: str) -> Result[int]:
        """Remove every cached event of one calendar."""
        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM calendar_events WHERE calendar_id = ?", (calendar_id,))
                    deleted = cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to delete events for {calendar_id}: {e}", cause=e))

        return Result.ok(deleted)

    # =========================================================================
    # Sync state
    # =========================================================================

    def get_last_sync_time(self, calendar_id: str) -> Result[datetime | None]:
        """Time of the last successful sync, ``None`` if never synced."""
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT last_sync_time FROM calendar_sync_state WHERE calendar_id = ?",
                    (calendar_id,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_query_error(f"Failed to read sync state for {calendar_id}: {e}", cause=e))

        return Result.ok(parse_time(row["last_sync_time"]) if row else None)

    def list_sync_states(self, calendar_ids: list[str]) -> Result[list[SyncState]]:
        """Sync state rows for the given calendars; never-synced ones are absent."""
        if not calendar_ids:
            return Result.ok([])

        placeholders = ",".join("?" * len(calendar_ids))
        try:
            conn = get_connection(self.db_path)
            try:
                rows = conn.execute(
                    f"SELECT calendar_id, last_sync_time FROM calendar_sync_state WHERE calendar_id IN ({placeholders})",
                    calendar_ids,
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_query_error(f"Failed to read sync state: {e}", cause=e))

        return Result.ok([SyncState(row["calendar_id"], parse_time(row["last_sync_time"])) for row in rows])

    def set_last_sync_time(self, calendar_id: str, synced_at: datetime) -> Result[None]:
        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO calendar_sync_state (calendar_id, last_sync_time, updated_at)
                        VALUES (?, ?, datetime('now'))
                        ON CONFLICT(calendar_id) DO UPDATE SET
                            last_sync_time = excluded.last_sync_time,
                            updated_at = datetime('now')
                    """,
                        (calendar_id, to_storage_time(synced_at)),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to save sync state for {calendar_id}: {e}", cause=e))

        return Result.ok()

    def delete_sync_state(self, calendar_id: str) -> Result[None]:
        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    conn.execute("DELETE FROM calendar_sync_state WHERE calendar_id = ?", (calendar_id,))
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to clear sync state for {calendar_id}: {e}", cause=e))

        return Result.ok()
