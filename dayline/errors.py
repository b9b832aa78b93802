"""
Error codes, user-facing messages and the Result type.

Every fallible engine operation returns a ``Result`` instead of raising, so
callers branch on ``result.success`` explicitly. Error codes are closed enums,
one per error family, with a single table of user-facing messages.

Usage:
    from dayline.errors import CalendarErrorCode, AppError, Result

    result = await provider.get_events(calendar_id, time_range)
    if not result.success:
        print(result.error.user_message)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar


T = TypeVar("T")


class CalendarErrorCode(str, Enum):
    """Failures reported by calendar providers and the OAuth flow."""

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INVALID_URL = "INVALID_URL"


class CryptoErrorCode(str, Enum):
    """Failures from the encrypted secret layer."""

    KEY_MISSING = "ENCRYPTION_KEY_MISSING"
    KEY_INVALID = "ENCRYPTION_KEY_INVALID"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"


class StorageErrorCode(str, Enum):
    """Failures from the local SQLite store."""

    DB_QUERY_ERROR = "DB_QUERY_ERROR"
    DB_WRITE_ERROR = "DB_WRITE_ERROR"


class SyncErrorCode(str, Enum):
    """Failures while synchronizing one calendar."""

    CALENDAR_NOT_FOUND = "SYNC_CALENDAR_NOT_FOUND"
    TOKEN_NOT_FOUND = "SYNC_TOKEN_NOT_FOUND"
    PROVIDER_ERROR = "SYNC_PROVIDER_ERROR"
    DB_ERROR = "SYNC_DB_ERROR"
    CONFIG_ERROR = "SYNC_CONFIG_ERROR"


ErrorCode = CalendarErrorCode | CryptoErrorCode | StorageErrorCode | SyncErrorCode


USER_MESSAGES: dict[ErrorCode, str] = {
    CalendarErrorCode.AUTH_REQUIRED: "Sign in to connect this calendar account.",
    CalendarErrorCode.AUTH_EXPIRED: "Your sign-in has expired. Reconnect the account to keep syncing.",
    CalendarErrorCode.API_ERROR: "The calendar service returned an error.",
    CalendarErrorCode.NETWORK_ERROR: "The calendar could not be reached. Check the connection and try again.",
    CalendarErrorCode.PARSE_ERROR: "The calendar data could not be read.",
    CalendarErrorCode.NOT_FOUND: "The calendar was not found.",
    CalendarErrorCode.INVALID_URL: "Enter a valid http:// or https:// calendar URL.",
    CryptoErrorCode.KEY_MISSING: "The encryption key is not configured.",
    CryptoErrorCode.KEY_INVALID: "The encryption key is invalid.",
    CryptoErrorCode.ENCRYPTION_FAILED: "A credential could not be stored securely.",
    CryptoErrorCode.DECRYPTION_FAILED: (
        "A stored credential could not be decrypted. It may have been tampered "
        "with or the encryption key changed."
    ),
    StorageErrorCode.DB_QUERY_ERROR: "Cached calendar data could not be read.",
    StorageErrorCode.DB_WRITE_ERROR: "Calendar data could not be saved locally.",
    SyncErrorCode.CALENDAR_NOT_FOUND: "That calendar is not configured.",
    SyncErrorCode.TOKEN_NOT_FOUND: "No saved sign-in for this calendar account.",
    SyncErrorCode.PROVIDER_ERROR: "The calendar could not be synchronized.",
    SyncErrorCode.DB_ERROR: "Synchronized events could not be saved.",
    SyncErrorCode.CONFIG_ERROR: "The calendar configuration could not be loaded.",
}


@dataclass(frozen=True)
class AppError:
    """
    A failure scoped to the smallest affected unit.

    ``account`` is set for failures that need the user to re-authorize that
    account; ``status`` carries the HTTP status of an upstream API error.
    """

    code: ErrorCode
    message: str
    account: str | None = None
    status: int | None = None
    calendar_id: str | None = None
    cause: Any = None

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.code, self.message)

    @property
    def requires_reauth(self) -> bool:
        return self.code in (
            CalendarErrorCode.AUTH_EXPIRED,
            CalendarErrorCode.AUTH_REQUIRED,
            SyncErrorCode.TOKEN_NOT_FOUND,
        )

    def with_calendar(self, calendar_id: str) -> "AppError":
        """Copy of this error tagged with the calendar it happened on."""
        return AppError(
            code=self.code,
            message=self.message,
            account=self.account,
            status=self.status,
            calendar_id=calendar_id,
            cause=self.cause,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.account:
            d["account"] = self.account
        if self.status is not None:
            d["status"] = self.status
        if self.calendar_id:
            d["calendarId"] = self.calendar_id
        return d

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success carrying ``value`` or failure carrying ``error``."""

    success: bool
    value: T | None = None
    error: AppError | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: AppError) -> "Result[T]":
        return cls(success=False, error=error)


class ConfigError(Exception):
    """Raised when the calendar configuration cannot be loaded or saved."""

    pass


class StartupError(Exception):
    """Raised when the service cannot start, e.g. a missing encryption key."""

    def __init__(self, error: AppError):
        super().__init__(str(error))
        self.error = error


# Factories


def auth_required(message: str, account: str | None = None) -> AppError:
    return AppError(CalendarErrorCode.AUTH_REQUIRED, message, account=account)


def auth_expired(account: str, message: str = "Authorization expired") -> AppError:
    return AppError(CalendarErrorCode.AUTH_EXPIRED, message, account=account)


def api_error(message: str, status: int, cause: Any = None) -> AppError:
    return AppError(CalendarErrorCode.API_ERROR, message, status=status, cause=cause)


def network_error(message: str, cause: Any = None) -> AppError:
    return AppError(CalendarErrorCode.NETWORK_ERROR, message, cause=cause)


def parse_error(message: str, cause: Any = None) -> AppError:
    return AppError(CalendarErrorCode.PARSE_ERROR, message, cause=cause)


def not_found(message: str) -> AppError:
    return AppError(CalendarErrorCode.NOT_FOUND, message)


def invalid_url(message: str) -> AppError:
    return AppError(CalendarErrorCode.INVALID_URL, message)


def db_query_error(message: str, cause: Any = None) -> AppError:
    return AppError(StorageErrorCode.DB_QUERY_ERROR, message, cause=cause)


def db_write_error(message: str, cause: Any = None) -> AppError:
    return AppError(StorageErrorCode.DB_WRITE_ERROR, message, cause=cause)
