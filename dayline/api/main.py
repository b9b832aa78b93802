"""
Dayline HTTP application

Wires settings, the secret store, token manager, event cache and sync
orchestrator into a FastAPI app.

Usage:
    uvicorn dayline.api.main:app --port 8080
    # or
    dayline serve --port 8080
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from dayline import __version__
from dayline.api.routes import router
from dayline.config import DaylineSettings, load_config, load_settings
from dayline.errors import ConfigError, StartupError, SyncErrorCode
from dayline.event_cache import EventRepository
from dayline.oauth_manager import TokenManager
from dayline.security.vault import SecretStore, load_encryption_key
from dayline.sync import CalendarSync

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived collaborators shared by every request."""

    settings: DaylineSettings
    store: SecretStore
    token_manager: TokenManager
    repository: EventRepository
    sync: CalendarSync


def build_services(settings: DaylineSettings | None = None) -> Services:
    """
    Construct the engine from settings.

    Raises:
        StartupError: the encryption key is missing or malformed
    """
    settings = settings or load_settings()

    key = load_encryption_key(settings.encryption_key)
    if not key.success:
        raise StartupError(key.error)

    store = SecretStore(key.value, settings.db_path)
    token_manager = TokenManager(
        store,
        settings.google_client_id,
        settings.google_client_secret,
        settings.redirect_uri,
        timeout=settings.request_timeout_seconds,
    )
    repository = EventRepository(settings.db_path)
    config_path = settings.config_path
    sync = CalendarSync(
        repository,
        token_manager,
        config_loader=lambda: load_config(config_path),
        ttl=timedelta(seconds=settings.cache_ttl_seconds),
        tz=settings.timezone,
        timeout=settings.request_timeout_seconds,
        window_days=settings.sync_window_days,
    )
    return Services(settings, store, token_manager, repository, sync)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app; services are constructed eagerly so a bad key fails at startup."""
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting dayline {__version__} (db: {services.settings.db_path})")
        if not services.token_manager.configured:
            logger.warning("Google OAuth client is not configured; only iCal feeds will sync")
        yield
        logger.info("Dayline stopped")

    app = FastAPI(
        title="Dayline API",
        description="Merged calendar timeline",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError):
        logger.error(f"Configuration error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": SyncErrorCode.CONFIG_ERROR.value, "message": str(exc)}},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
        )

    app.include_router(router)
    return app


def __getattr__(name: str):
    # ``uvicorn dayline.api.main:app`` builds the app on first access
    if name == "app":
        return create_app()
    raise AttributeError(name)
