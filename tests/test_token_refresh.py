"""
Unit tests for the token refresh job.

Run tests with: python -m pytest tests/test_token_refresh.py -v
"""

import os
import sys
import pytest
import pytz
from datetime import datetime
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoload.exceptions import ClientError, RetriesExhaustedError, ServerOrNetworkError
from autoload.scheduled_action import ActionStatus
from services.token_refresh.main import TokenRefreshAction
from services.token_refresh.main import main as token_refresh_main

from conftest import VALID_CONFIG

FRIDAY = pytz.utc.localize(datetime(2026, 10, 16, 6, 0))


class TestTokenRefreshAction:
    """Test suite for TokenRefreshAction.run()."""

    @pytest.fixture
    def context(self, make_context, write_config):
        write_config(VALID_CONFIG)
        return make_context()

    # === Request ===

    def test_refresh_request(self, context, http_response):
        context.http_client.execute.return_value = http_response(200)

        TokenRefreshAction(context).run()

        descriptor = context.http_client.execute.call_args.args[0]
        assert descriptor.method == "POST"
        assert descriptor.url == "https://api.10bis.co.il/api/v1/Authentication/RefreshToken"
        assert descriptor.json_body == {"refreshToken": VALID_CONFIG["RefreshToken"]}
        assert descriptor.headers["Cookie"] == (
            f"Authorization={VALID_CONFIG['AccessToken']}; RefreshToken={VALID_CONFIG['RefreshToken']}"
        )

    def test_no_cookie_without_access_token(self, make_context, write_config, http_response):
        write_config({"RefreshToken": "only-refresh"})
        context = make_context()
        context.http_client.execute.return_value = http_response(200)

        result = TokenRefreshAction(context).run()

        assert result.status == ActionStatus.SUCCESS
        descriptor = context.http_client.execute.call_args.args[0]
        assert "Cookie" not in descriptor.headers

    def test_runs_on_weekend(self, context, http_response):
        context.http_client.execute.return_value = http_response(200)

        assert TokenRefreshAction(context).run(now=FRIDAY).status == ActionStatus.SUCCESS

    # === Persistence ===

    def test_rotated_tokens_are_saved(self, context, http_response, read_config, config_path):
        context.http_client.execute.return_value = http_response(
            200,
            body={"AccessToken": "body-access", "RefreshToken": "body-refresh"},
            headers={"X-Access-Token": "header-access"},
        )

        result = TokenRefreshAction(context).run()

        assert result.status == ActionStatus.SUCCESS
        assert sorted(result.updated_fields) == ["AccessToken", "RefreshToken"]
        saved = read_config()
        assert saved["AccessToken"] == "header-access"
        assert saved["RefreshToken"] == "body-refresh"
        assert saved["Amount"] == VALID_CONFIG["Amount"]
        assert saved["MoneycardId"] == VALID_CONFIG["MoneycardId"]
        assert read_config(config_path.with_name("config.json.backup")) == VALID_CONFIG
        context.alert_service.tokens_refreshed.assert_called_once()

    def test_cookie_tokens_are_saved(self, context, http_response, read_config):
        context.http_client.execute.return_value = http_response(
            200, set_cookies=["Authorization=cookie-access; Path=/", "RefreshToken=cookie-refresh; Path=/"]
        )

        TokenRefreshAction(context).run()

        saved = read_config()
        assert saved["AccessToken"] == "cookie-access"
        assert saved["RefreshToken"] == "cookie-refresh"

    def test_no_updates_is_success(self, context, http_response, read_config, config_path):
        context.http_client.execute.return_value = http_response(200, body={"success": True})

        result = TokenRefreshAction(context).run()

        assert result.status == ActionStatus.SUCCESS
        assert result.exit_code == 0
        assert result.updated_fields == []
        assert read_config() == VALID_CONFIG
        assert not os.path.exists(f"{config_path}.backup")

    def test_dry_run_persists_nothing(self, make_context, write_config, http_response, read_config):
        write_config(VALID_CONFIG)
        context = make_context(dry_run=True)
        context.http_client.execute.return_value = http_response(
            200, headers={"X-Refresh-Token": "new-refresh"}
        )

        result = TokenRefreshAction(context).run()

        assert result.status == ActionStatus.SUCCESS
        assert result.updated_fields == ["RefreshToken"]
        assert read_config() == VALID_CONFIG

    def test_backup_failure_fails_the_run(self, context, http_response, read_config):
        context.http_client.execute.return_value = http_response(200, headers={"X-Refresh-Token": "new"})

        with patch("autoload.credential_store.shutil.copy2", side_effect=OSError("disk full")):
            result = TokenRefreshAction(context).run()

        assert result.exit_code == 1
        assert "Failed to persist credentials" in result.error
        assert read_config() == VALID_CONFIG
        context.alert_service.token_refresh_failed.assert_called_once()

    # === Failure ===

    def test_expired_refresh_token(self, context, read_config):
        context.http_client.execute.side_effect = ClientError(401, {"message": "expired"}, "Unauthorized")

        result = TokenRefreshAction(context).run()

        assert result.exit_code == 1
        assert result.auth_error is True
        assert read_config() == VALID_CONFIG
        args, kwargs = context.alert_service.token_refresh_failed.call_args
        assert kwargs["auth_error"] is True

    def test_server_down(self, context):
        cause = ServerOrNetworkError("Request timeout: read timed out")
        context.http_client.execute.side_effect = RetriesExhaustedError(cause, 3)

        result = TokenRefreshAction(context).run()

        assert result.status == ActionStatus.FAILED
        assert result.auth_error is False

    def test_missing_refresh_token(self, make_context, write_config):
        write_config({"AccessToken": "a"})
        context = make_context()

        result = TokenRefreshAction(context).run()

        assert result.exit_code == 1
        assert "RefreshToken" in result.error
        context.http_client.execute.assert_not_called()

    def test_outputs_in_github_actions(self, context, http_response, monkeypatch, tmp_path):
        output_file = tmp_path / "github_output"
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
        context.http_client.execute.return_value = http_response(200, headers={"X-Refresh-Token": "new"})

        TokenRefreshAction(context).run()

        assert "tokens_updated=true" in output_file.read_text(encoding="utf-8")


class TestMain:
    """Test suite for the command line entry point."""

    def test_failure_exit_code(self, make_context, write_config):
        write_config(VALID_CONFIG)
        context = make_context()
        context.http_client.execute.side_effect = ClientError(400, reason="Bad Request")

        with patch("services.token_refresh.main.ConfigLoader") as loader:
            loader.return_value.build_context.return_value = context
            with pytest.raises(SystemExit) as exc_info:
                token_refresh_main([])

        assert exc_info.value.code == 1
        context.http_client.close.assert_called_once()

    def test_dry_run_flag(self):
        with patch("services.token_refresh.main.ConfigLoader") as loader:
            loader.return_value.build_context.side_effect = RuntimeError("stop")
            with pytest.raises(SystemExit):
                token_refresh_main(["--dry-run", "--max-attempts", "5"])

        settings = loader.call_args.args[0]
        assert settings.dry_run is True
        assert settings.max_attempts == 5
