"""
Utility functions for the migration validator.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
from subprocess import CompletedProcess
from typing import Final

LOG_FILE: Final[str] = "migration-validator.log"

# Environment variables set by common CI systems
_CI_ENV_VARS: Final[tuple[str, ...]] = ("CI", "CONTINUOUS_INTEGRATION", "GITHUB_ACTIONS", "JENKINS_URL", "BUILD_NUMBER")


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


def setup_logging(*, verbose: bool = False, log_file: str | None = LOG_FILE) -> None:
    """Configure logging for a validation run."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # PyGithub and urllib3 are chatty at DEBUG
    if verbose:
        logging.getLogger("urllib3").setLevel(logging.INFO)


def normalize_url(url: str) -> str:
    """Trim whitespace and trailing slashes and default the scheme to https."""
    normalized = url.strip().rstrip("/")
    if not normalized.startswith(("https://", "http://")):
        normalized = f"https://{normalized}"
    return normalized


def is_interactive() -> bool:
    """Return False under CI or when stdout is not a terminal."""
    if any(os.environ.get(name) for name in _CI_ENV_VARS):
        return False
    return sys.stdout.isatty()


def _validate_pass_path(pass_path: str) -> None:
    """Validate the pass path format."""
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The 'pass' utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if e.returncode == 1 and "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        if e.returncode == 2 and "gpg" in e.stderr.lower() and "public key decryption failed" in e.stderr.lower():
            # Usually the GPG key needs a passphrase. This fails in non-interactive sessions.
            return _get_pass_value_with_passphrase(pass_path)
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Output: {e.stdout.strip()}\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    return result.stdout.strip()


def _get_pass_value_with_passphrase(pass_path: str) -> str:
    try:
        passphrase = input("Enter passphrase for GPG key used by pass: ")
    except EOFError as e:
        msg = "Passphrase input was interrupted. Please run the command in an interactive session."
        raise PassphraseRequiredError(msg) from e

    env = os.environ.copy() | {"PASSWORD_STORE_GPG_OPTS": "--pinentry-mode=loopback --passphrase-fd 0"}
    try:
        result = subprocess.run(  # noqa: S603
            ["pass", pass_path], input=passphrase, capture_output=True, text=True, check=True, env=env
        )
    except subprocess.CalledProcessError as e:
        msg = (
            f"Failed to get value from pass at '{pass_path}' with passphrase.\n"
            f"Output: {e.stdout.strip()}\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassphraseRequiredError(msg) from e
    return result.stdout.strip()
