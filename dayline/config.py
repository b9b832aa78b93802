"""
Settings and calendar source configuration.

Deployment settings come from the environment (a ``.env`` file is loaded
first). The list of calendar sources lives in ``args/dayline.yaml`` and is
validated with pydantic.

Example args/dayline.yaml:

    version: 1.0.0
    calendars:
      - id: google-me-example-com-primary
        type: google
        name: Work
        google_account_email: me@example.com
        google_calendar_id: primary
      - id: ical-holidays
        type: ical
        name: Holidays
        ical_url: https://example.com/holidays.ics
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dayline import ARGS_DIR, DB_PATH
from dayline.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = ARGS_DIR / "dayline.yaml"

ENCRYPTION_KEY_ENV = "DAYLINE_ENCRYPTION_KEY"


# =============================================================================
# Settings (environment)
# =============================================================================

class DaylineSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")
    encryption_key: Optional[str] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    base_url: str = Field(default="http://localhost:8080")
    db_path: Path = Field(default=DB_PATH)
    config_path: Path = Field(default=CONFIG_PATH)
    timezone: str = Field(default="UTC")
    cache_ttl_seconds: int = Field(default=3600, ge=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    sync_window_days: int = Field(default=30, ge=1)

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url.rstrip('/')}/oauth/callback"


def load_settings(env_file: str | Path | None = None) -> DaylineSettings:
    """Build settings from the process environment."""
    load_dotenv(env_file)

    raw = {
        "encryption_key": os.environ.get(ENCRYPTION_KEY_ENV),
        "google_client_id": os.environ.get("GOOGLE_CLIENT_ID"),
        "google_client_secret": os.environ.get("GOOGLE_CLIENT_SECRET"),
        "base_url": os.environ.get("DAYLINE_BASE_URL"),
        "db_path": os.environ.get("DAYLINE_DB_PATH"),
        "config_path": os.environ.get("DAYLINE_CONFIG_PATH"),
        "timezone": os.environ.get("DAYLINE_TIMEZONE"),
        "cache_ttl_seconds": os.environ.get("DAYLINE_CACHE_TTL_SECONDS"),
        "request_timeout_seconds": os.environ.get("DAYLINE_REQUEST_TIMEOUT"),
        "sync_window_days": os.environ.get("DAYLINE_SYNC_WINDOW_DAYS"),
    }
    return DaylineSettings.model_validate({k: v for k, v in raw.items() if v is not None})


# =============================================================================
# Calendar sources (args/dayline.yaml)
# =============================================================================

class CalendarSource(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str = Field(min_length=1)
    type: Literal["google", "ical"]
    name: str = Field(min_length=1)
    enabled: bool = Field(default=True)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    google_account_email: Optional[str] = None
    google_calendar_id: Optional[str] = None
    ical_url: Optional[str] = None

    @model_validator(mode="after")
    def _check_kind_fields(self) -> "CalendarSource":
        if self.type == "google" and not (self.google_account_email and self.google_calendar_id):
            raise ValueError("google calendars need google_account_email and google_calendar_id")
        if self.type == "ical" and not self.ical_url:
            raise ValueError("ical calendars need ical_url")
        return self

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


class DaylineConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    version: str = Field(default="1.0.0", pattern=r"^\d+\.\d+\.\d+$")
    calendars: list[CalendarSource] = Field(default_factory=list)

    @property
    def enabled_calendars(self) -> list[CalendarSource]:
        return [c for c in self.calendars if c.enabled]

    def find(self, calendar_id: str) -> CalendarSource | None:
        return next((c for c in self.calendars if c.id == calendar_id), None)


def load_config(path: Path | None = None) -> DaylineConfig:
    """
    Load calendar configuration.

    A missing file yields defaults; a malformed or invalid one raises
    ConfigError rather than silently dropping calendars.
    """
    yaml_path = path or CONFIG_PATH
    if not yaml_path.exists():
        return DaylineConfig()

    try:
        with open(yaml_path) as f:
            raw = yaml.safe_load(f) or {}
        return DaylineConfig.model_validate(raw)
    except (yaml.YAMLError, ValidationError) as e:
        logger.error(f"Config validation failed for {yaml_path}: {e}")
        raise ConfigError(f"Invalid calendar configuration in {yaml_path}: {e}") from e


def save_config(config: DaylineConfig, path: Path | None = None) -> None:
    """Write configuration atomically (temp file then replace)."""
    yaml_path = path or CONFIG_PATH
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(exclude_none=True)

    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=yaml_path.parent, suffix=".yaml.tmp")
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        os.replace(tmp_name, yaml_path)
    except (OSError, yaml.YAMLError) as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ConfigError(f"Failed to write {yaml_path}: {e}") from e
