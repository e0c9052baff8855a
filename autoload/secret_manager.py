#!/usr/bin/env python3
"""
Secret Manager Module

Reads and versions the 10bis credential secret in Google Cloud Secret Manager.

Two secrets are involved:
- "tenbis-credentials": the credential set as a JSON object
- "tenbis-credentials-backup": the pre-merge payload, written before every
  update of the main secret

A secret that does not exist yet reads as None, so a first provisioning run
can create it. Any other failure (permissions, network, unknown project)
raises SecretManagerError: the caller must not mistake an unreadable secret
for an empty one.
"""

import os
import logging
from typing import Optional

import requests

from autoload.exceptions import SecretManagerError

logger = logging.getLogger(__name__)

SECRET_NAMES = {
    "credentials": "tenbis-credentials",
    "credentials_backup": "tenbis-credentials-backup",
}

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
PROJECT_ENV_VARS = ("GCP_PROJECT", "GOOGLE_CLOUD_PROJECT")
REQUEST_TIMEOUT = 10


def _project_from_env() -> Optional[str]:
    for var in PROJECT_ENV_VARS:
        if os.environ.get(var):
            return os.environ[var]
    return None


def _metadata(path: str, timeout: float) -> Optional[str]:
    """GET a metadata server path. None when the server is unreachable."""
    try:
        response = requests.get(
            f"{METADATA_URL}/{path}",
            headers={"Metadata-Flavor": "Google"},
            timeout=timeout
        )
    except requests.exceptions.RequestException:
        return None
    return response.text if response.status_code == 200 else None


def is_running_on_gcp() -> bool:
    """True on Compute Engine / Cloud Run, or when a project is configured."""
    if _project_from_env():
        logger.debug("GCP detected via project environment variable")
        return True
    if _metadata("instance/id", timeout=1) is not None:
        logger.debug("GCP detected via metadata server")
        return True
    return False


def get_project_id() -> Optional[str]:
    """Project from the environment, else from the metadata server."""
    return _project_from_env() or _metadata("project/project-id", timeout=2)


def _require_project_id() -> str:
    project_id = get_project_id()
    if not project_id:
        raise SecretManagerError("could not determine the GCP project id")
    return project_id


def _client():
    from google.cloud import secretmanager
    return secretmanager.SecretManagerServiceClient()


def get_secret(secret_name: str, version: str = "latest") -> Optional[str]:
    """
    Fetch a secret payload.

    Args:
        secret_name: Name of the secret in Secret Manager
        version: Version of the secret (default: "latest")

    Returns:
        str: The payload, or None if the secret (or version) does not exist

    Raises:
        SecretManagerError: Any failure other than "not found"
    """
    from google.api_core import exceptions as google_exceptions

    name = f"projects/{_require_project_id()}/secrets/{secret_name}/versions/{version}"
    try:
        response = _client().access_secret_version(request={"name": name}, timeout=REQUEST_TIMEOUT)
    except google_exceptions.NotFound:
        logger.warning(f"Secret {secret_name} has no {version} version yet")
        return None
    except Exception as e:
        logger.error(f"Failed to fetch secret {secret_name}: {e}")
        raise SecretManagerError(f"cannot read secret {secret_name}: {e}") from e

    logger.info(f"Fetched secret: {secret_name}")
    return response.payload.data.decode("UTF-8")


def update_secret(secret_name: str, secret_value: str) -> bool:
    """
    Add a new version of a secret.

    Returns:
        bool: True if the version was added
    """
    try:
        parent = f"projects/{_require_project_id()}/secrets/{secret_name}"
        response = _client().add_secret_version(
            request={
                "parent": parent,
                "payload": {"data": secret_value.encode("UTF-8")}
            },
            timeout=REQUEST_TIMEOUT,
        )
    except Exception as e:
        logger.error(f"Failed to update secret {secret_name}: {e}")
        return False

    logger.info(f"Secret {secret_name} updated: {response.name}")
    return True
