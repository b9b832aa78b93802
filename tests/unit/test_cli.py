"""Tests for dayline/cli.py

Commands run through main() with sys.argv patched and services built over
temporary storage.
"""

from unittest.mock import AsyncMock, patch

import pytest

from dayline import cli
from dayline.api.main import build_services
from dayline.config import DaylineSettings
from dayline.models import OAuthTokenSet
from tests.conftest import FIXED_KEY_B64, at, feed_source, google_source


@pytest.fixture
def services(temp_db, config_path):
    settings = DaylineSettings(
        encryption_key=FIXED_KEY_B64,
        google_client_id="client-id",
        google_client_secret="client-secret",
        db_path=temp_db,
        config_path=config_path,
    )
    return build_services(settings)


@pytest.fixture
def run(services):
    """Run the CLI with the given arguments; returns the exit code."""

    def _run(*argv: str) -> int:
        with (
            patch("sys.argv", ["dayline", *argv]),
            patch("dayline.cli._services", return_value=services),
            patch("dayline.cli.setup_logging"),
        ):
            try:
                cli.main()
            except SystemExit as e:
                return e.code
        return 0

    return _run


# ─────────────────────────────────────────────────────────────────────────────
# Configuration Error Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestConfigErrors:
    """A broken calendar config is reported, not raised."""

    @pytest.mark.parametrize("command", [["sync"], ["events"], ["timeline", "--json"]])
    def test_broken_config_prints_error(self, run, config_path, capsys, command):
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text("calendars: [unclosed\n")

        code = run(*command)

        assert code == 1
        err = capsys.readouterr().err
        assert err.startswith("Error: Invalid calendar configuration")
        assert "Traceback" not in err


# ─────────────────────────────────────────────────────────────────────────────
# Account Removal Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRemoveAccount:
    """Tests for the remove-account command."""

    def test_revokes_and_removes_calendars(self, run, services, write_config, capsys):
        write_config(
            google_source("google-me-primary", account="me@example.com"),
            google_source("google-you-primary", account="you@example.com"),
            feed_source("ical-a"),
        )
        tokens = OAuthTokenSet(access_token="access-1", refresh_token="refresh-1", expires_at=at(12))
        services.token_manager.save_tokens("me@example.com", tokens)

        with patch.object(services.token_manager, "_post_form", AsyncMock(return_value=(200, {}))):
            code = run("remove-account", "me@example.com")

        assert code == 0
        assert "google-me-primary" in capsys.readouterr().out
        assert services.token_manager.has_tokens("me@example.com") is False
        remaining = [c.id for c in services.sync.config_loader().calendars]
        assert remaining == ["google-you-primary", "ical-a"]

    def test_unknown_account_removes_nothing(self, run, write_config, capsys):
        write_config(feed_source("ical-a"))

        code = run("remove-account", "nobody@example.com")

        assert code == 0
        assert "removed 0 calendar(s)" in capsys.readouterr().out
