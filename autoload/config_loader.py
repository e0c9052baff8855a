#!/usr/bin/env python3
"""
Config Loader Module

Builds everything one scheduled-action run needs, explicitly, instead of
module-level singletons:
- AppSettings: non-secret settings from CLI flags and environment overrides
- ActionContext: settings + credential store + HTTP client + log masking,
  scoped to a single invocation

Environment detection (same code everywhere):
- GitHub Actions: credentials from environment variables, updates go to outputs
- GCP: credentials from Secret Manager, updates written back as new versions
- Locally: credentials from config.json, updates written with a .backup copy
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from autoload.alert_service import AlertService
from autoload.credential_store import CredentialStore, default_sources
from autoload.github_actions import is_github_actions, mask_value
from autoload.http_client import DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT, ResilientHttpClient
from autoload.logger_service import SecretMaskingFilter, setup_logging
from autoload.schedule import WEEKEND_DAYS, get_israel_time, parse_weekdays
from autoload.secret_manager import get_project_id, is_running_on_gcp

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.10bis.co.il/api/v1"


@dataclass
class AppSettings:
    """Non-secret settings for one run."""
    config_path: str = "config.json"
    log_dir: str = "logs"
    log_level: str = "INFO"
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    request_timeout: float = DEFAULT_TIMEOUT
    api_base_url: str = DEFAULT_API_BASE_URL
    weekend_days: tuple = WEEKEND_DAYS
    dry_run: bool = False
    force: bool = False

    @classmethod
    def from_args(cls, args: Any, environ: Optional[Dict[str, str]] = None) -> "AppSettings":
        """
        Build settings from parsed argparse flags plus environment overrides.

        Environment:
            TENBIS_API_BASE_URL   API base URL override
            TENBIS_WEEKEND_DAYS   Blocked days, e.g. "fri,sat"
        """
        environ = os.environ if environ is None else environ
        max_attempts = getattr(args, "max_attempts", None)
        request_timeout = getattr(args, "timeout", None)
        return cls(
            config_path=getattr(args, "config", None) or "config.json",
            log_dir=getattr(args, "log_dir", None) or "logs",
            log_level=getattr(args, "log_level", None) or "INFO",
            max_attempts=DEFAULT_MAX_ATTEMPTS if max_attempts is None else max_attempts,
            request_timeout=DEFAULT_TIMEOUT if request_timeout is None else request_timeout,
            api_base_url=(environ.get("TENBIS_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
            weekend_days=parse_weekdays(environ.get("TENBIS_WEEKEND_DAYS")),
            dry_run=bool(getattr(args, "dry_run", False)),
            force=bool(getattr(args, "force", False)),
        )


@dataclass
class ActionContext:
    """
    Collaborators for one scheduled-action invocation.

    alert_service is normally built after the credentials are loaded (the
    notification settings live in the credential set); tests may inject one.
    """
    settings: AppSettings
    store: CredentialStore
    http_client: ResilientHttpClient
    masking_filter: SecretMaskingFilter = field(default_factory=SecretMaskingFilter)
    clock: Callable[[], datetime] = get_israel_time
    project_id: Optional[str] = None
    alert_service: Optional[AlertService] = None

    def alerts_for(self, credentials: Optional[Dict[str, Any]], bot_name: str) -> AlertService:
        if self.alert_service is None:
            self.alert_service = AlertService.from_credentials(
                credentials or {}, bot_name, project_id=self.project_id
            )
        return self.alert_service

    def close(self):
        self.http_client.close()


class ConfigLoader:
    """
    Builds an ActionContext with cloud/local detection.

    Usage:
        loader = ConfigLoader(settings)
        context = loader.build_context(log_file="credit.log")
    """

    def __init__(self, settings: AppSettings):
        self.settings = settings
        self._is_cloud = None

    @property
    def is_cloud(self) -> bool:
        """Check if running on GCP (never inside GitHub Actions)."""
        if self._is_cloud is None:
            self._is_cloud = not is_github_actions() and is_running_on_gcp()
        return self._is_cloud

    def register_secret(self, masking_filter: SecretMaskingFilter) -> Callable[[Any], None]:
        """Callback that hides a value from the log files and the Actions log."""
        def _register(value):
            masking_filter.add_secret(value)
            mask_value(value)
        return _register

    def build_context(self, log_file: str) -> ActionContext:
        masking_filter = setup_logging(
            log_dir=self.settings.log_dir,
            log_file=log_file,
            level=self.settings.log_level,
        )

        if is_github_actions():
            logger.info("GitHub Actions environment detected - credentials from environment")
        elif self.is_cloud:
            logger.info("Cloud environment detected - credentials from Secret Manager")
        else:
            logger.info(f"Local environment detected - credentials from {self.settings.config_path}")

        store = CredentialStore(
            default_sources(self.settings.config_path, use_cloud=self.is_cloud),
            on_secret=self.register_secret(masking_filter),
        )

        return ActionContext(
            settings=self.settings,
            store=store,
            http_client=ResilientHttpClient(),
            masking_filter=masking_filter,
            project_id=get_project_id() if self.is_cloud else None,
        )
