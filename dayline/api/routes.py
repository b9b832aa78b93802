"""
Routes - OAuth, events, sync and calendar management

Provides:
- POST /oauth/start - Begin Google authorization (PKCE)
- GET /oauth/callback - Complete authorization and register calendars
- GET /events?range=today|week - Merged events with last sync time
- POST /calendars/sync - Sync every enabled calendar
- POST /calendars/feed - Probe and register an iCal feed
- GET /calendars - Configured calendar sources
- DELETE /calendars/{calendar_id} - Remove a calendar and its cache
- DELETE /accounts/{account} - Revoke an account and remove its calendars

Errors use one body shape: {"error": {"code": ..., "message": ...}}.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dayline import calendars as registry
from dayline.config import CalendarSource
from dayline.errors import AppError, CalendarErrorCode, SyncErrorCode, auth_required

logger = logging.getLogger(__name__)

router = APIRouter()

VERIFIER_COOKIE = "dayline_oauth_verifier"
STATE_COOKIE = "dayline_oauth_state"
OAUTH_COOKIE_MAX_AGE = 600

_BAD_REQUEST_CODES = {
    CalendarErrorCode.INVALID_URL,
    CalendarErrorCode.PARSE_ERROR,
    CalendarErrorCode.NETWORK_ERROR,
}
_UNAUTHORIZED_CODES = {CalendarErrorCode.AUTH_REQUIRED, CalendarErrorCode.AUTH_EXPIRED}
_NOT_FOUND_CODES = {CalendarErrorCode.NOT_FOUND, SyncErrorCode.CALENDAR_NOT_FOUND}


def http_status_for(error: AppError) -> int:
    if error.code in _BAD_REQUEST_CODES:
        return status.HTTP_400_BAD_REQUEST
    if error.code in _UNAUTHORIZED_CODES:
        return status.HTTP_401_UNAUTHORIZED
    if error.code in _NOT_FOUND_CODES:
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(error: AppError, status_code: int | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or http_status_for(error),
        content={"error": {"code": error.code.value, "message": error.message}},
    )


def get_services(request: Request):
    return request.app.state.services


def calendar_payload(source: CalendarSource) -> dict:
    """camelCase view of a calendar source."""
    d = {"id": source.id, "type": source.type, "name": source.name, "enabled": source.enabled}
    if source.color:
        d["color"] = source.color
    if source.google_account_email:
        d["googleAccountEmail"] = source.google_account_email
    if source.google_calendar_id:
        d["googleCalendarId"] = source.google_calendar_id
    if source.ical_url:
        d["icalUrl"] = source.ical_url
    return d


# =============================================================================
# Request Models
# =============================================================================


class FeedRequest(BaseModel):
    """Body of POST /calendars/feed."""

    url: str = Field(min_length=1)
    name: str | None = None


# =============================================================================
# OAuth
# =============================================================================


@router.post("/oauth/start")
async def oauth_start(services=Depends(get_services)):
    """Begin authorization; the verifier and state are also kept in short-lived cookies."""
    result = services.token_manager.begin_authorization()
    if not result.success:
        return error_response(result.error)

    request_data = result.value
    response = JSONResponse(content=request_data.to_dict())
    for name, value in ((VERIFIER_COOKIE, request_data.code_verifier), (STATE_COOKIE, request_data.state)):
        response.set_cookie(name, value, max_age=OAUTH_COOKIE_MAX_AGE, httponly=True, samesite="lax")
    return response


@router.get("/oauth/callback")
async def oauth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    verifier: str | None = None,
    services=Depends(get_services),
):
    """
    Complete authorization and register the account's calendars.

    The verifier comes from the ``verifier`` query parameter or the cookie
    set by /oauth/start.
    """
    if error:
        return error_response(auth_required(f"Authorization was denied: {error}"), status.HTTP_400_BAD_REQUEST)
    if not code:
        return error_response(auth_required("Missing authorization code"), status.HTTP_400_BAD_REQUEST)

    code_verifier = verifier or request.cookies.get(VERIFIER_COOKIE)
    if not code_verifier:
        return error_response(auth_required("Missing PKCE verifier; restart authorization"), status.HTTP_400_BAD_REQUEST)

    result = await services.token_manager.complete_authorization(
        code,
        code_verifier,
        state=state,
        expected_state=request.cookies.get(STATE_COOKIE),
    )
    if not result.success:
        logger.warning(f"OAuth callback failed: {result.error}")
        return error_response(result.error)

    authorized = result.value
    registered = registry.register_oauth_calendars(
        authorized.account, authorized.calendars, services.settings.config_path
    )
    if not registered.success:
        return error_response(registered.error)

    response = JSONResponse(
        content={
            "account": authorized.account,
            "calendars": [c.to_dict() for c in authorized.calendars],
            "registered": [calendar_payload(s) for s in registered.value],
        }
    )
    response.delete_cookie(VERIFIER_COOKIE)
    response.delete_cookie(STATE_COOKIE)
    return response


# =============================================================================
# Events and sync
# =============================================================================


@router.get("/events")
async def get_events(
    view: Literal["today", "week"] = Query(default="today", alias="range"),
    services=Depends(get_services),
):
    """Merged events for today or this week."""
    if view == "week":
        result = await services.sync.get_events_for_week()
    else:
        result = await services.sync.get_events_for_today()

    if not result.success:
        return error_response(result.error)
    return result.value.to_dict()


@router.post("/calendars/sync")
async def sync_calendars(services=Depends(get_services)):
    summary = await services.sync.sync_all()
    return summary.to_dict()


# =============================================================================
# Calendars
# =============================================================================


@router.get("/calendars")
async def list_calendars(services=Depends(get_services)):
    result = registry.list_calendars(services.settings.config_path)
    if not result.success:
        return error_response(result.error)
    return {"calendars": [calendar_payload(c) for c in result.value]}


@router.post("/calendars/feed", status_code=status.HTTP_201_CREATED)
async def add_feed(body: FeedRequest, services=Depends(get_services)):
    """Probe a feed URL and register it."""
    result = await registry.add_feed_calendar(
        body.url,
        body.name,
        config_path=services.settings.config_path,
        timeout=services.settings.request_timeout_seconds,
    )
    if not result.success:
        return error_response(result.error)
    return {"calendar": calendar_payload(result.value)}


@router.delete("/calendars/{calendar_id}")
async def delete_calendar(calendar_id: str, services=Depends(get_services)):
    result = registry.remove_calendar(calendar_id, services.repository, services.settings.config_path)
    if not result.success:
        return error_response(result.error)
    return {"removed": result.value.id}


@router.delete("/accounts/{account}")
async def delete_account(account: str, services=Depends(get_services)):
    """Revoke a Google account and drop every calendar it backs."""
    result = await registry.remove_account(
        account,
        services.token_manager,
        services.repository,
        services.settings.config_path,
    )
    if not result.success:
        return error_response(result.error)
    return {"account": account, "removed": result.value}
