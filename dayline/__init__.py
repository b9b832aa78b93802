"""Dayline: merged calendar timeline for a single local user

Philosophy:
    One screen, every calendar. Events from an OAuth-connected provider and
    from read-only iCal feeds are cached locally and laid out as a single
    timeline. A calendar that fails to sync never hides the others.

Components:
    security/vault.py: Encrypted secret store (AES-256-GCM at rest)
    oauth_manager.py: OAuth 2.0 PKCE flow and token lifecycle
    providers/: Google Calendar and iCal feed providers
    event_cache.py: Local event cache and per-calendar sync state
    sync.py: Cache-or-fetch orchestration with partial-failure reporting
    timeline.py: Overlap columns and past/current/next/future status
    api/: HTTP surface (FastAPI)
"""

import sqlite3
from pathlib import Path


__version__ = "0.3.0"

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"
DATA_PATH = PROJECT_ROOT / "data"
DB_PATH = DATA_PATH / "dayline.db"


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Get database connection, creating tables if needed.

    Args:
        db_path: Database file (defaults to data/dayline.db)

    Returns:
        SQLite connection with row_factory set
    """
    path = Path(db_path) if db_path else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()

    # Cached calendar events, unique per (provider event id, calendar)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS calendar_events (
            id TEXT NOT NULL,
            calendar_id TEXT NOT NULL,
            title TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            is_all_day INTEGER NOT NULL DEFAULT 0,
            location TEXT,
            description TEXT,
            source_type TEXT NOT NULL,
            source_calendar_name TEXT NOT NULL,
            source_account_email TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (id, calendar_id)
        )
    """)

    # Last successful sync per calendar
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS calendar_sync_state (
            calendar_id TEXT PRIMARY KEY NOT NULL,
            last_sync_time TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # Encrypted secrets (nonce | tag | ciphertext, base64)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS credentials (
            key TEXT PRIMARY KEY NOT NULL,
            encrypted_value TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # Indexes
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_calendar_events_time_range "
        "ON calendar_events(start_time, end_time)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_calendar_events_calendar_id "
        "ON calendar_events(calendar_id)"
    )

    conn.commit()
    return conn
