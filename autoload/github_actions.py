"""
GitHub Actions side channel.

When the jobs run inside a GitHub Actions workflow, credentials arrive as
environment variables and cannot be written back from the job itself. Rotated
tokens are instead published as step outputs (for a later workflow step that
updates the repository secrets) and masked so they never appear in the run log.
"""

import logging
import os
import uuid

logger = logging.getLogger(__name__)


def is_github_actions() -> bool:
    """Check the platform marker set by the Actions runner."""
    return bool(os.environ.get("GITHUB_ACTIONS"))


def mask_value(value) -> None:
    """Ask the runner to redact a value from all subsequent log output."""
    if is_github_actions() and value:
        print(f"::add-mask::{value}", flush=True)


def set_output(name: str, value) -> None:
    """
    Publish a step output.

    Writes to the $GITHUB_OUTPUT file when the runner provides one, otherwise
    falls back to the legacy ::set-output workflow command. Outside Actions
    this is a no-op.

    Multi-line values (an HTML error page in an error message) use the
    name<<DELIMITER form with a random delimiter, so no line of the value can
    be read as another output.
    """
    if not is_github_actions():
        return

    value = "" if value is None else str(value)
    output_file = os.environ.get("GITHUB_OUTPUT")
    if output_file:
        with open(output_file, "a", encoding="utf-8") as f:
            if "\n" in value or "\r" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
                f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                f.write(f"{name}={value}\n")
    else:
        print(f"::set-output name={name}::{_escape_command_value(value)}", flush=True)
    logger.debug(f"Actions output set: {name}")


def _escape_command_value(value: str) -> str:
    """Workflow command escaping, keeps the command on one line."""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
