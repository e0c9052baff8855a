#!/usr/bin/env python3
"""
Credential Store Module

Durable, validated access to the 10bis credential set (tokens, amount, card id,
notification settings).

The Problem:
- The refresh token is rotated by the API; losing the new value means a manual
  browser login to recover
- The same jobs run locally (cron + config.json), in GitHub Actions (secrets as
  environment variables) and on GCP (Secret Manager)

The Solution:
- One store with an ordered chain of backing sources; the first source that
  yields data is the active source for the whole run
- save() merges updates over the persisted set, backs up the pre-merge data,
  and only then writes the merged set. A failed backup aborts the write, so
  the previous version is never silently lost
- Environment-sourced credentials are read-only: updates are published as
  GitHub Actions outputs (masked) for the workflow to store

Usage:
    store = CredentialStore(default_sources("config.json"))
    credentials = store.load()
    store.validate(credentials, ["AccessToken", "RefreshToken"])
    merged = store.save({"AccessToken": "new-token"})
"""

import os
import json
import shutil
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from autoload import github_actions, secret_manager
from autoload.exceptions import ConfigurationMissingError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

# Credential field names (shared by every backing source)
ACCESS_TOKEN = "AccessToken"
REFRESH_TOKEN = "RefreshToken"
AMOUNT = "Amount"
MONEYCARD_ID = "MoneycardId"

# Environment variable -> credential field
ENV_FIELDS = {
    "ACCESS_TOKEN": ACCESS_TOKEN,
    "REFRESH_TOKEN": REFRESH_TOKEN,
    "AMOUNT": AMOUNT,
    "MONEYCARD_ID": MONEYCARD_ID,
    "TEAMS_WEBHOOK_URL": "TeamsWebhookUrl",
    "TEAMS_TENANT_ID": "TeamsTenantId",
    "TEAMS_CLIENT_ID": "TeamsClientId",
    "TEAMS_CLIENT_SECRET": "TeamsClientSecret",
    "TEAMS_USER_ID": "TeamsUserId",
}

# Fields whose values must never reach a log sink
SECRET_FIELDS = (ACCESS_TOKEN, REFRESH_TOKEN, "TeamsWebhookUrl", "TeamsClientSecret")

# Credential field -> GitHub Actions output name
OUTPUT_NAMES = {
    ACCESS_TOKEN: "access_token",
    REFRESH_TOKEN: "refresh_token",
    AMOUNT: "amount",
}


def is_blank(value: Any) -> bool:
    """Absent and whitespace-only values are treated the same."""
    return value is None or str(value).strip() == ""


def validate_credentials(credentials: Dict[str, Any], required_fields: Iterable[str]) -> None:
    """
    Check that every required field is present and non-blank.

    Raises:
        ValidationError: Listing every missing field, in the order requested
    """
    missing = [name for name in required_fields if is_blank(credentials.get(name))]
    if missing:
        raise ValidationError(missing)


# =============================================================================
# BACKING SOURCES
# =============================================================================

class CredentialSource:
    """Interface for a credential backing source."""

    name = "source"
    read_only = False

    def read(self) -> Optional[Dict[str, Any]]:
        """Return the persisted credential set, or None if this source has none."""
        raise NotImplementedError

    def backup(self, current: Dict[str, Any]) -> None:
        """Preserve the pre-merge credential set. Must raise on failure."""
        raise NotImplementedError

    def write(self, merged: Dict[str, Any]) -> None:
        """Persist the merged credential set. Must raise on failure."""
        raise NotImplementedError

    def publish(self, updates: Dict[str, Any]) -> None:
        """Report updates for read-only sources."""
        raise NotImplementedError


class FileCredentialSource(CredentialSource):
    """
    Local JSON file (config.json) with a sibling backup (config.json.backup).

    Writes are atomic: the merged set goes to a temp file that is renamed over
    the original.
    """

    name = "file"

    def __init__(self, path: str = "config.json"):
        self.path = Path(path)
        self.backup_path = Path(f"{path}.backup")

    def read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading config file {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Config file {self.path} does not contain a JSON object")
            return None
        return data

    def backup(self, current: Dict[str, Any]) -> None:
        if not self.path.exists():
            logger.debug(f"No existing {self.path} - nothing to back up")
            return
        shutil.copy2(self.path, self.backup_path)
        logger.debug(f"Config backed up to {self.backup_path}")

    def write(self, merged: Dict[str, Any]) -> None:
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(merged, f, indent=2, ensure_ascii=False)
        # Atomic rename
        os.replace(temp_file, self.path)


class EnvironmentCredentialSource(CredentialSource):
    """
    Environment variables (GitHub Actions secrets).

    Active when the GITHUB_ACTIONS platform marker or ACCESS_TOKEN is set.
    Read-only: updates are masked and published as step outputs.
    """

    name = "environment"
    read_only = True

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def is_active(self) -> bool:
        return bool(self._environ.get("GITHUB_ACTIONS") or self._environ.get("ACCESS_TOKEN"))

    def read(self) -> Optional[Dict[str, Any]]:
        if not self.is_active():
            return None
        return {
            field_name: self._environ[env_name]
            for env_name, field_name in ENV_FIELDS.items()
            if self._environ.get(env_name) is not None
        }

    def publish(self, updates: Dict[str, Any]) -> None:
        for field_name, value in updates.items():
            if field_name in SECRET_FIELDS:
                github_actions.mask_value(value)
            output_name = OUTPUT_NAMES.get(field_name)
            if output_name:
                github_actions.set_output(output_name, value)
        logger.info(f"Updates published as workflow outputs: {', '.join(updates)}")


class SecretManagerCredentialSource(CredentialSource):
    """
    JSON credential secret in GCP Secret Manager.

    The backup is a new version of a separate backup secret holding the
    pre-merge payload; the merged set becomes a new version of the main secret.
    A secret that cannot be fetched raises SecretManagerError from read();
    only a missing secret reads as None.
    """

    name = "secret_manager"

    def __init__(
        self,
        secret_name: str = secret_manager.SECRET_NAMES["credentials"],
        backup_secret_name: str = secret_manager.SECRET_NAMES["credentials_backup"],
    ):
        self.secret_name = secret_name
        self.backup_secret_name = backup_secret_name

    def read(self) -> Optional[Dict[str, Any]]:
        value = secret_manager.get_secret(self.secret_name)
        if not value:
            return None
        try:
            data = json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse {self.secret_name} JSON: {e}")
            return None
        return data if isinstance(data, dict) else None

    def backup(self, current: Dict[str, Any]) -> None:
        if not secret_manager.update_secret(self.backup_secret_name, json.dumps(current)):
            raise PersistenceError(f"backup to secret {self.backup_secret_name} failed")

    def write(self, merged: Dict[str, Any]) -> None:
        if not secret_manager.update_secret(self.secret_name, json.dumps(merged)):
            raise PersistenceError(f"write to secret {self.secret_name} failed")


def default_sources(config_path: str = "config.json", use_cloud: Optional[bool] = None) -> List[CredentialSource]:
    """
    Build the standard source chain: environment, Secret Manager (on GCP), file.

    Args:
        config_path: Local config.json path
        use_cloud: Force Secret Manager on/off (None = detect GCP)
    """
    sources: List[CredentialSource] = [EnvironmentCredentialSource()]
    if use_cloud is None:
        use_cloud = secret_manager.is_running_on_gcp()
    if use_cloud:
        sources.append(SecretManagerCredentialSource())
    sources.append(FileCredentialSource(config_path))
    return sources


# =============================================================================
# STORE
# =============================================================================

class CredentialStore:
    """
    Loads, validates and persists the credential set.

    Args:
        sources: Backing sources, in priority order
        on_secret: Called with every secret value that passes through the store
                   (used to register values with the log masking filter)
    """

    def __init__(
        self,
        sources: List[CredentialSource],
        on_secret: Optional[Callable[[Any], None]] = None,
    ):
        if not sources:
            raise ValueError("At least one credential source is required")
        self.sources = sources
        self._on_secret = on_secret
        self._active_source: Optional[CredentialSource] = None

    @property
    def active_source(self) -> Optional[CredentialSource]:
        return self._active_source

    def _register_secrets(self, credentials: Dict[str, Any]) -> None:
        if not self._on_secret:
            return
        for field_name in SECRET_FIELDS:
            if not is_blank(credentials.get(field_name)):
                self._on_secret(credentials[field_name])

    def load(self) -> Dict[str, Any]:
        """
        Read the credential set from the first source that has one.

        Raises:
            ConfigurationMissingError: If no source yields data
        """
        for source in self.sources:
            data = source.read()
            if data:
                self._active_source = source
                self._register_secrets(data)
                logger.info(f"Credentials loaded from {source.name} source")
                return dict(data)

        names = ", ".join(source.name for source in self.sources)
        raise ConfigurationMissingError(
            f"No configuration found (checked: {names}). "
            "Set environment variables or create config.json"
        )

    def validate(self, credentials: Dict[str, Any], required_fields: Iterable[str]) -> None:
        validate_credentials(credentials, required_fields)

    def _reread(self, source: CredentialSource) -> Dict[str, Any]:
        """The persisted set as it is now. An unreadable source is never treated as empty."""
        try:
            current = source.read()
        except Exception as e:
            logger.error(f"Cannot re-read credentials from {source.name} - not writing: {e}")
            raise PersistenceError(e) from e
        if not current:
            logger.error(f"Credentials in {source.name} source disappeared since load - not writing")
            raise PersistenceError(f"{source.name} source returned no credentials; refusing to overwrite")
        return current

    def save(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge updates over the persisted set and store the result.

        New values replace old ones for matching keys; untouched keys survive.
        The pre-merge data is backed up first. If the backup fails nothing is
        written.

        Returns:
            dict: The merged credential set

        Raises:
            PersistenceError: If the persisted set cannot be read, or the backup
                              or the write fails
        """
        source = self._active_source
        if source is None:
            try:
                current = self.load()
                source = self._active_source
            except ConfigurationMissingError:
                # Nothing persisted yet: the last source in the chain receives the first write
                source = self.sources[-1]
                current = {}
                logger.info(f"No existing credentials - creating them in {source.name} source")
            except Exception as e:
                raise PersistenceError(e) from e
        else:
            current = self._reread(source)

        self._register_secrets(updates)
        merged = {**current, **updates}

        if source.read_only:
            source.publish(updates)
            return merged

        try:
            source.backup(current)
        except PersistenceError:
            logger.error(f"Backup failed - not writing credentials to {source.name}")
            raise
        except Exception as e:
            logger.error(f"Backup failed - not writing credentials to {source.name}: {e}")
            raise PersistenceError(e) from e

        try:
            source.write(merged)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(e) from e

        logger.info(f"Configuration updated ({source.name}): {', '.join(updates)}")
        return merged
