"""
Shared infrastructure for the 10bis automation jobs.

This package contains the pieces every scheduled job uses:
- http_client: HTTP requests with retry and exponential backoff
- credential_store: Load/validate/persist the credential set (env, GCP, file)
- token_extraction: Rotated tokens from response headers and body
- scheduled_action: The run state machine shared by all jobs
- alert_service: Teams webhook / Teams chat / Pub/Sub notifications
- logger_service: Console + file logging with secret masking
- config_loader: Settings and the per-run ActionContext
- schedule: Israel-time weekend checks
- secret_manager: GCP Secret Manager access
- github_actions: Step outputs and log masking inside GitHub Actions

JOBS
================================================================================
    services.token_refresh   Rotate AccessToken/RefreshToken (runs daily)
    services.credit_loader   Load the configured Amount onto the moneycard
                             (Sunday-Thursday, skipped on Friday/Saturday)
    services.token_provisioner
                             One-shot: store tokens copied from the browser

Exit codes: 0 on success or intentional skip, 1 on any failure. Cron (or the
workflow) alerts on non-zero exits.

Usage:
    from autoload import ConfigLoader, AppSettings

    context = ConfigLoader(AppSettings()).build_context(log_file="credit.log")
    credentials = context.store.load()
================================================================================
"""

from autoload.exceptions import (
    AutoloadError,
    ConfigurationMissingError,
    ValidationError,
    ClientError,
    ServerOrNetworkError,
    RetriesExhaustedError,
    PersistenceError,
    is_auth_error,
)
from autoload.http_client import ResilientHttpClient, RequestDescriptor, HttpResponse
from autoload.credential_store import (
    CredentialStore,
    FileCredentialSource,
    EnvironmentCredentialSource,
    SecretManagerCredentialSource,
    default_sources,
    validate_credentials,
)
from autoload.token_extraction import extract_token_update
from autoload.alert_service import AlertService, AlertType, AlertPriority
from autoload.logger_service import setup_logging, SecretMaskingFilter
from autoload.config_loader import ConfigLoader, AppSettings, ActionContext
from autoload.scheduled_action import ScheduledAction, ActionResult, ActionStatus
from autoload.schedule import is_weekend, get_israel_time, format_israel_time

__all__ = [
    # Errors
    'AutoloadError', 'ConfigurationMissingError', 'ValidationError', 'ClientError',
    'ServerOrNetworkError', 'RetriesExhaustedError', 'PersistenceError', 'is_auth_error',
    # HTTP
    'ResilientHttpClient', 'RequestDescriptor', 'HttpResponse',
    # Credentials
    'CredentialStore', 'FileCredentialSource', 'EnvironmentCredentialSource',
    'SecretManagerCredentialSource', 'default_sources', 'validate_credentials',
    'extract_token_update',
    # Alerts
    'AlertService', 'AlertType', 'AlertPriority',
    # Logging / config
    'setup_logging', 'SecretMaskingFilter', 'ConfigLoader', 'AppSettings', 'ActionContext',
    # Orchestration
    'ScheduledAction', 'ActionResult', 'ActionStatus',
    # Schedule
    'is_weekend', 'get_israel_time', 'format_israel_time',
]
