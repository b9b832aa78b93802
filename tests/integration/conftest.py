"""
Integration test fixtures for the dayline HTTP API.

Provides:
- Settings pointing at temporary database and config paths
- Fully wired services built with a fixed encryption key
- A FastAPI TestClient running the app lifespan
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from dayline.api.main import Services, build_services, create_app
from dayline.config import DaylineSettings
from tests.conftest import FIXED_KEY_B64


# ─────────────────────────────────────────────────────────────────────────────
# App Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(temp_db: Path, config_path: Path) -> DaylineSettings:
    return DaylineSettings(
        encryption_key=FIXED_KEY_B64,
        google_client_id="client-id",
        google_client_secret="client-secret",
        db_path=temp_db,
        config_path=config_path,
    )


@pytest.fixture
def services(settings: DaylineSettings) -> Services:
    return build_services(settings)


@pytest.fixture
def client(services: Services) -> Generator[TestClient, None, None]:
    """Test client for the API; the lifespan runs inside the context."""
    with TestClient(create_app(services)) as test_client:
        yield test_client
