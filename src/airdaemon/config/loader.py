"""Configuration loader for the daemon.

Resolution order, highest priority first:

1. Explicit overrides (CLI flags)
2. YAML configuration file
3. Environment variables (``AIRDAEMON_*``)
4. Built-in defaults
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from airdaemon.config.defaults import DEFAULT_DAEMON_CONFIG
from airdaemon.lib.errors import ConfigError
from airdaemon.lib.logging_config import get_logger
from airdaemon.models.config import DaemonConfig

logger = get_logger(__name__)

# Environment variable to field name mapping
ENV_VAR_MAP = {field: f"AIRDAEMON_{field.upper()}" for field in DEFAULT_DAEMON_CONFIG}

# Older deployments configure the socket through this variable
LEGACY_SOCKET_ENV_VAR = "dockerSocket"


def _env_values(env_vars: Mapping[str, str]) -> dict[str, Any]:
    """Collect configuration values present in the environment.

    Values stay strings; pydantic coerces them to the field types.
    """
    values: dict[str, Any] = {}
    if LEGACY_SOCKET_ENV_VAR in env_vars:
        values["docker_socket"] = env_vars[LEGACY_SOCKET_ENV_VAR]
    for field_name, env_var_name in ENV_VAR_MAP.items():
        if env_var_name in env_vars:
            values[field_name] = env_vars[env_var_name]
    return values


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML config file into a mapping.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError("config", f"Config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError("config", f"Failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError("config", f"Invalid YAML in {path}: {exc}") from exc

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError("config", f"Config file {path} must contain a mapping")
    return content


class ConfigLoader:
    """Build a ``DaemonConfig`` from overrides, a file, the env and defaults."""

    def __init__(self, env_vars: Mapping[str, str] | None = None) -> None:
        """Initialize the loader.

        Args:
            env_vars: Environment to read from. Defaults to ``os.environ``.
        """
        self.env_vars = os.environ if env_vars is None else env_vars

    def load(
        self,
        config_path: str | Path | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> DaemonConfig:
        """Resolve the daemon configuration.

        Args:
            config_path: Optional YAML file.
            overrides: Values that take precedence over everything else.
                ``None`` values are ignored so unset CLI flags do not mask
                lower-priority sources.

        Returns:
            The validated configuration.

        Raises:
            ConfigError: If any source holds an invalid value.
        """
        merged: dict[str, Any] = {}
        merged.update(_env_values(self.env_vars))
        if config_path is not None:
            logger.debug(f"Loading daemon configuration from {config_path}")
            merged.update(_read_yaml(Path(config_path)))
        if overrides:
            merged.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return DaemonConfig(**merged)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(loc) for loc in first.get("loc", ())) or "config"
            raise ConfigError(field, first.get("msg", str(exc))) from exc
