"""
Shared fixtures for the autoload test suite.

Run tests with: python -m pytest tests/ -v
"""

import os
import sys
import json
import logging

import pytest
from requests.structures import CaseInsensitiveDict
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoload.config_loader import ActionContext, AppSettings
from autoload.credential_store import CredentialStore, FileCredentialSource
from autoload.http_client import HttpResponse

# Variables that change where credentials come from or where outputs go
ISOLATED_ENV_VARS = [
    "GITHUB_ACTIONS", "GITHUB_OUTPUT", "ACCESS_TOKEN", "REFRESH_TOKEN", "AMOUNT",
    "MONEYCARD_ID", "TEAMS_WEBHOOK_URL", "GCP_PROJECT", "GOOGLE_CLOUD_PROJECT",
    "ALERT_DRY_RUN", "TENBIS_API_BASE_URL", "TENBIS_WEEKEND_DAYS",
]

VALID_CONFIG = {
    "AccessToken": "access-token-0123456789abcdef",
    "RefreshToken": "refresh-token-0123456789abcdef",
    "Amount": "100",
    "MoneycardId": "987654",
}


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Run every test as a local (non-Actions, non-GCP) invocation."""
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_autoload_handler", False):
            root.removeHandler(handler)
            handler.close()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


@pytest.fixture
def write_config(config_path):
    """Write a config.json and return its path."""
    def _write(data):
        config_path.write_text(json.dumps(data), encoding="utf-8")
        return config_path
    return _write


@pytest.fixture
def read_config(config_path):
    def _read(path=None):
        return json.loads((path or config_path).read_text(encoding="utf-8"))
    return _read


@pytest.fixture
def make_context(config_path, tmp_path):
    """ActionContext over a file store, a mocked HTTP client and a mocked alert service."""
    def _make(**overrides):
        settings = AppSettings(
            config_path=str(config_path),
            log_dir=str(tmp_path / "logs"),
            **overrides,
        )
        return ActionContext(
            settings=settings,
            store=CredentialStore([FileCredentialSource(str(config_path))]),
            http_client=MagicMock(),
            alert_service=MagicMock(),
        )
    return _make


@pytest.fixture
def http_response():
    """Factory for successful HttpResponse objects."""
    def _make(status=200, body=None, headers=None, set_cookies=None):
        return HttpResponse(
            status=status,
            headers=CaseInsensitiveDict(headers or {}),
            body=body,
            set_cookies=list(set_cookies or []),
        )
    return _make
