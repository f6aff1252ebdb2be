"""Settings for the external tools and timeouts used by pgtoolbox.

Settings come from three layers, later layers winning:

1. Defaults declared on ``ToolboxSettings``
2. An optional YAML file with a top-level ``config:`` key
3. ``PGTOOLBOX_<FIELD>`` environment variables (a ``.env`` file is loaded first)

Example YAML:

    config:
      pg_dump_bin: ${PG_BIN_DIR:-/usr/bin}/pg_dump
      migration_timeout: 600
"""

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

ENV_PREFIX = "PGTOOLBOX_"


class ToolboxSettings(BaseModel):
    """Executables, timeouts and process-handling knobs."""

    model_config = ConfigDict(frozen=True)

    pg_dump_bin: str = "pg_dump"
    migrate_bin: str = "migrate"
    migration_timeout: float = 300.0
    dump_format: Literal["c", "t", "p"] = "c"
    password_env_var: str = "PGPASSWORD"
    kill_grace_period: float = 1.0
    poll_interval: float = 0.1
    allowed_schemes: tuple[str, ...] | None = None


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message
    """

    def replacer(match: re.Match[str]) -> str:
        var_expr = match.group(1)

        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name, default)

        elif ":?" in var_expr:
            var_name, error_msg = var_expr.split(":?", 1)
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable {var_name}: {error_msg}")
            return value

        else:
            value = os.getenv(var_expr)
            if value is None:
                raise ValueError(f"Required environment variable {var_expr} not set")
            return value

    return re.sub(r"\$\{([^}]+)\}", replacer, text)


def _read_settings_file(file_path: Path) -> dict[str, Any]:
    content = substitute_env_vars(file_path.read_text())
    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    if not isinstance(loaded, dict) or "config" not in loaded:
        raise ValueError(f"Invalid YAML structure in {file_path}: missing 'config' key")
    return dict(loaded["config"] or {})


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in ToolboxSettings.model_fields:
        value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if value is None:
            continue
        if name == "allowed_schemes":
            overrides[name] = tuple(s.strip() for s in value.split(",") if s.strip())
        else:
            overrides[name] = value
    return overrides


def load_settings(file_path: Path | None = None) -> ToolboxSettings:
    """Load settings from an optional YAML file and the environment.

    Args:
        file_path: YAML file with a top-level ``config`` mapping

    Returns:
        Validated ToolboxSettings

    Raises:
        FileNotFoundError: If ``file_path`` does not exist
        ValueError: If the YAML is invalid, a required ``${VAR}`` is unset,
            or a value fails validation
    """
    load_dotenv()

    data: dict[str, Any] = {}
    if file_path is not None:
        logger.info(f"Loading pgtoolbox settings from {file_path}")
        data.update(_read_settings_file(file_path))

    overrides = _env_overrides()
    if overrides:
        logger.debug(f"Environment overrides: {sorted(overrides)}")
    data.update(overrides)

    try:
        return ToolboxSettings(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid pgtoolbox settings: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> ToolboxSettings:
    """Get settings from defaults and the environment (cached)."""
    return load_settings()
