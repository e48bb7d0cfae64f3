"""
Settings for a validation run.

Every value can come from a ``GHMV_``-prefixed environment variable; command
line flags override the environment. Tokens can additionally be read from
the ``pass`` password store.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any, Final

from . import utils
from .exceptions import ConfigurationError

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

ENV_PREFIX: Final[str] = "GHMV_"
DEFAULT_RATE_LIMIT_THRESHOLD: Final[int] = 50

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class Settings:
    source_token: str | None = None
    target_token: str | None = None
    source_hostname: str | None = None
    target_hostname: str | None = None
    source_app_id: str | None = None
    source_private_key: str | None = None
    source_installation_id: str | None = None
    target_app_id: str | None = None
    target_private_key: str | None = None
    target_installation_id: str | None = None
    source_organization: str | None = None
    target_organization: str | None = None
    source_repo: str | None = None
    target_repo: str | None = None
    repo_list: str | None = None
    rate_limit_threshold: int = DEFAULT_RATE_LIMIT_THRESHOLD
    markdown_table: bool = False
    markdown_file: str | None = None
    strict_exit: bool = False
    no_lfs: bool = False
    bbs_server_url: str | None = None
    bbs_project: str | None = None
    bbs_repo: str | None = None
    bbs_token: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``GHMV_<FIELD>`` environment variables."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field in fields(cls):
            raw = environ.get(env_var_name(field.name))
            if raw is None or raw == "":
                continue
            if field.type == "bool":
                values[field.name] = raw.strip().lower() in _TRUE_VALUES
            elif field.type == "int":
                try:
                    values[field.name] = int(raw)
                except ValueError as e:
                    msg = f"{env_var_name(field.name)} must be an integer, got '{raw}'"
                    raise ConfigurationError(msg) from e
            else:
                values[field.name] = raw
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> Settings:  # noqa: ANN401
        """Return a copy with every non-None override applied."""
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})


def env_var_name(field_name: str) -> str:
    return f"{ENV_PREFIX}{field_name.upper()}"


def resolve_token(token: str | None, pass_path: str | None = None) -> str | None:
    """Pick a token: explicit pass path first, then the already configured value."""
    if pass_path:
        try:
            return utils.get_pass_value(pass_path)
        except (ValueError, utils.PassError) as e:
            msg = f"Failed to read token from pass path '{pass_path}': {e}"
            raise ConfigurationError(msg) from e
    return token


def require(value: str | None, flag: str, field_name: str, description: str) -> str:
    """Return ``value`` or raise a ConfigurationError naming the flag and the environment variable."""
    if not value:
        msg = f"{description} is required. Set it via {flag} flag or {env_var_name(field_name)} environment variable"
        raise ConfigurationError(msg)
    return value
