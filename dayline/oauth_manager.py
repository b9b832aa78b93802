"""
Tool: OAuth Manager
Purpose: OAuth 2.0 PKCE flow and token lifecycle for Google Calendar

Handles:
- Authorization URL generation (PKCE S256 challenge + anti-forgery state)
- Code exchange (auth code + verifier -> tokens) and account discovery
- Expiry detection with a 5-minute buffer and token refresh
- Token persistence through the encrypted SecretStore, keyed by account email
- Revocation when an account is removed

Per-account lifecycle:
    Unauthenticated -> AuthorizationRequested -> Authenticated
        -> (Expiring -> Refreshed)* -> Revoked

A rejected refresh token is reported as AUTH_EXPIRED for that account and is
never retried automatically; the user has to consent again.

Usage:
    manager = TokenManager(store, client_id, client_secret, redirect_uri)
    request = manager.begin_authorization()          # keep verifier + state
    result = await manager.complete_authorization(code, request.value.code_verifier)
    fresh = await manager.ensure_fresh_token("me@example.com")
"""

import base64
import hashlib
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import aiohttp

from dayline.errors import AppError, Result, api_error, auth_expired, auth_required, network_error, parse_error
from dayline.models import OAuthTokenSet, ProviderCalendar, utc_now
from dayline.security.vault import SecretStore

logger = logging.getLogger(__name__)


# OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

# Read-only access only
SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_EXPIRES_IN = 3600


def _generate_pkce_pair() -> tuple[str, str]:
    """
    Generate PKCE code verifier and challenge pair per RFC 7636.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    # 32 random bytes -> 43 base64url characters
    code_verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")

    challenge_bytes = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(challenge_bytes).rstrip(b"=").decode("ascii")

    return code_verifier, code_challenge


def _generate_state() -> str:
    return secrets.token_hex(16)


def token_key(account: str) -> str:
    """Secret store key holding an account's tokens."""
    return f"google-oauth-{account}"


@dataclass
class AuthorizationRequest:
    """Redirect URL plus the values the caller must hold until the callback."""

    url: str
    code_verifier: str
    state: str

    def to_dict(self) -> dict[str, Any]:
        return {"authUrl": self.url, "verifier": self.code_verifier, "state": self.state}


@dataclass
class AuthorizationResult:
    """Outcome of a completed authorization."""

    account: str
    tokens: OAuthTokenSet
    calendars: list[ProviderCalendar] = field(default_factory=list)


class TokenManager:
    """
    Runs the PKCE flow and keeps each account's access token fresh.

    Tokens are never held across awaits by callers; the SecretStore is the
    source of truth after every write. Concurrent refreshes for one account
    are tolerated: each yields a usable token and the last write wins.
    """

    def __init__(
        self,
        store: SecretStore,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.clock = clock

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _post_form(self, url: str, data: dict[str, str]) -> tuple[int, dict[str, Any]]:
        """POST a form and return (status, JSON body or {})."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, data=data) as resp:
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = {}
                return resp.status, payload if isinstance(payload, dict) else {}

    async def _get_json(self, url: str, access_token: str) -> tuple[int, dict[str, Any]]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {"Authorization": f"Bearer {access_token}"}
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers=headers) as resp:
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = {}
                return resp.status, payload if isinstance(payload, dict) else {}

    def _tokens_from_response(self, payload: dict[str, Any], fallback_refresh: str | None = None) -> OAuthTokenSet:
        expires_in = payload.get("expires_in") or DEFAULT_EXPIRES_IN
        return OAuthTokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or fallback_refresh or "",
            expires_at=self.clock() + timedelta(seconds=int(expires_in)),
        )

    # =========================================================================
    # Authorization
    # =========================================================================

    def begin_authorization(self) -> Result[AuthorizationRequest]:
        """
        Build the consent URL.

        The returned verifier and state are session-scoped: the caller keeps
        them until the callback arrives and does not persist them long-term.
        """
        if not self.client_id:
            return Result.fail(auth_required("GOOGLE_CLIENT_ID is not configured"))

        code_verifier, code_challenge = _generate_pkce_pair()
        state = _generate_state()

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Force consent to ensure refresh token
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

        return Result.ok(
            AuthorizationRequest(
                url=f"{GOOGLE_AUTH_URL}?{urlencode(params)}",
                code_verifier=code_verifier,
                state=state,
            )
        )

    async def exchange_code(self, code: str, code_verifier: str) -> Result[OAuthTokenSet]:
        """Exchange an authorization code plus PKCE verifier for tokens."""
        if not self.configured:
            return Result.fail(auth_required("Google OAuth client credentials are not configured"))

        token_data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            status, payload = await self._post_form(GOOGLE_TOKEN_URL, token_data)
        except (aiohttp.ClientError, TimeoutError) as e:
            return Result.fail(network_error(f"Token exchange failed: {e}", cause=e))

        if status != 200:
            detail = payload.get("error_description") or payload.get("error") or f"HTTP {status}"
            return Result.fail(api_error(f"Token exchange failed: {detail}", status))

        if not payload.get("access_token") or not payload.get("refresh_token"):
            return Result.fail(api_error("Token response is missing the access or refresh token", 400))

        return Result.ok(self._tokens_from_response(payload))

    async def fetch_account_email(self, access_token: str) -> Result[str]:
        """Resolve the external account identity for a fresh access token."""
        try:
            status, payload = await self._get_json(GOOGLE_USERINFO_URL, access_token)
        except (aiohttp.ClientError, TimeoutError) as e:
            return Result.fail(network_error(f"User info request failed: {e}", cause=e))

        if status != 200:
            return Result.fail(api_error("User info request failed", status))

        email = payload.get("email")
        if not email:
            return Result.fail(parse_error("User info response has no email"))
        return Result.ok(email)

    async def complete_authorization(
        self,
        code: str,
        code_verifier: str,
        state: str | None = None,
        expected_state: str | None = None,
    ) -> Result[AuthorizationResult]:
        """
        Finish the flow: exchange, resolve the account, persist, discover calendars.

        The discovered calendars are returned for registration by the caller;
        nothing is added to configuration here.
        """
        if expected_state is not None and state != expected_state:
            return Result.fail(auth_required("OAuth state mismatch; restart authorization"))

        exchanged = await self.exchange_code(code, code_verifier)
        if not exchanged.success:
            return Result.fail(exchanged.error)
        tokens = exchanged.value

        identity = await self.fetch_account_email(tokens.access_token)
        if not identity.success:
            return Result.fail(identity.error)
        account = identity.value

        saved = self.save_tokens(account, tokens)
        if not saved.success:
            return Result.fail(saved.error)

        logger.info("Authorized account %s", account)

        from dayline.providers.google_calendar import GoogleCalendarProvider

        provider = GoogleCalendarProvider(account, self, timeout=self.timeout)
        listed = await provider.list_calendars()
        if not listed.success:
            return Result.fail(listed.error)

        return Result.ok(AuthorizationResult(account=account, tokens=tokens, calendars=listed.value))

    # =========================================================================
    # Token store
    # =========================================================================

    def get_tokens(self, account: str) -> Result[OAuthTokenSet | None]:
        loaded = self.store.get_json(token_key(account))
        if not loaded.success:
            return Result.fail(_for_account(loaded.error, account))
        if loaded.value is None:
            return Result.ok(None)

        try:
            return Result.ok(OAuthTokenSet.from_dict(loaded.value))
        except (KeyError, TypeError, ValueError) as e:
            return Result.fail(parse_error(f"Stored tokens for {account} are malformed", cause=e))

    def save_tokens(self, account: str, tokens: OAuthTokenSet) -> Result[None]:
        saved = self.store.set_json(token_key(account), tokens.to_dict())
        if not saved.success:
            return Result.fail(_for_account(saved.error, account))
        return saved

    def delete_tokens(self, account: str) -> Result[None]:
        return self.store.delete(token_key(account))

    def has_tokens(self, account: str) -> bool:
        return self.store.exists(token_key(account))

    # =========================================================================
    # Refresh
    # =========================================================================

    async def refresh(self, refresh_token: str) -> Result[OAuthTokenSet]:
        """Exchange a refresh token for a new access token."""
        if not self.configured:
            return Result.fail(auth_required("Google OAuth client credentials are not configured"))

        token_data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            status, payload = await self._post_form(GOOGLE_TOKEN_URL, token_data)
        except (aiohttp.ClientError, TimeoutError) as e:
            return Result.fail(network_error(f"Token refresh failed: {e}", cause=e))

        if status != 200 or not payload.get("access_token"):
            detail = payload.get("error") or f"HTTP {status}"
            return Result.fail(api_error(f"Token refresh failed: {detail}", status if status != 200 else 400))

        return Result.ok(self._tokens_from_response(payload, fallback_refresh=refresh_token))

    async def ensure_fresh_token(self, account: str) -> Result[OAuthTokenSet]:
        """
        Tokens for ``account`` whose access token is valid for at least 5 minutes.

        Returns AUTH_REQUIRED when nothing is stored and AUTH_EXPIRED when the
        provider rejects the refresh token.
        """
        loaded = self.get_tokens(account)
        if not loaded.success:
            return loaded
        tokens = loaded.value
        if tokens is None:
            return Result.fail(auth_required(f"No stored tokens for {account}", account=account))

        if not tokens.is_expired(self.clock(), REFRESH_BUFFER):
            return Result.ok(tokens)

        refreshed = await self.refresh(tokens.refresh_token)
        if not refreshed.success:
            error = refreshed.error
            if error.status in (400, 401):
                logger.warning("Refresh token rejected for %s; re-authorization required", account)
                return Result.fail(auth_expired(account, "Refresh token was rejected"))
            return Result.fail(_for_account(error, account))

        fresh = refreshed.value
        saved = self.save_tokens(account, fresh)
        if not saved.success:
            # The new token is still usable for this request
            logger.warning("Refreshed token for %s could not be saved: %s", account, saved.error)
        else:
            logger.info("Refreshed access token for %s", account)

        return Result.ok(fresh)

    # =========================================================================
    # Revocation
    # =========================================================================

    async def revoke(self, account: str) -> Result[None]:
        """
        Forget an account's tokens.

        Provider-side revocation is attempted first; its failure is logged and
        does not keep the local tokens alive.
        """
        loaded = self.get_tokens(account)
        if loaded.success and loaded.value is not None:
            try:
                status, _ = await self._post_form(GOOGLE_REVOKE_URL, {"token": loaded.value.refresh_token})
                if status != 200:
                    logger.warning("Provider revocation for %s returned HTTP %s", account, status)
            except (aiohttp.ClientError, TimeoutError) as e:
                logger.warning("Provider revocation for %s failed: %s", account, e)

        deleted = self.delete_tokens(account)
        if deleted.success:
            logger.info("Revoked tokens for %s", account)
        return deleted


def _for_account(error: AppError, account: str) -> AppError:
    if error.account:
        return error
    return AppError(
        code=error.code,
        message=error.message,
        account=account,
        status=error.status,
        calendar_id=error.calendar_id,
        cause=error.cause,
    )
