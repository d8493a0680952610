"""
Configuration loader for YAML files.

Loads and validates configuration from YAML files into Pydantic models.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from pydantic import ValidationError

from .models import AppConfig

if TYPE_CHECKING:
    from typing import Any


DEFAULT_CONFIG_PATH = Path("configs/app.yaml")

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML contents

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if data is not None else {}
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}",
            path=path,
            details=str(e),
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Cannot read {path}",
            path=path,
            details=str(e),
        ) from e


def _expand_env_vars(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand environment variables in string values.

    Supports ${VAR} and ${VAR:-default} syntax.
    """
    def expand_value(value: Any) -> Any:
        if isinstance(value, str):
            def replacer(match: re.Match[str]) -> str:
                return os.environ.get(match.group(1), match.group(2) or "")

            return _ENV_PATTERN.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [expand_value(item) for item in value]
        return value

    return expand_value(data)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply well-known environment variables on top of file values."""
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        data.setdefault("database", {})
        data["database"]["url"] = database_url

    port = os.environ.get("CRON_SERVER_PORT")
    if port:
        data.setdefault("server", {})
        data["server"]["port"] = port

    # An expanded-but-empty placeholder means "not configured"
    db = data.get("database")
    if isinstance(db, dict) and db.get("url") == "":
        db["url"] = None

    return data


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
) -> AppConfig:
    """Load application configuration from YAML file.

    Args:
        path: Path to app.yaml (default: configs/app.yaml)
        expand_env: Whether to expand environment variables

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration is invalid
    """
    path = DEFAULT_CONFIG_PATH if path is None else Path(path)

    data = _load_yaml_file(path) if path.exists() else {}

    if expand_env:
        data = _expand_env_vars(data)
        data = _apply_env_overrides(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid app configuration in {path}",
            path=path,
            details=str(e),
        ) from e


def require_database_url(config: AppConfig) -> str:
    """Return the configured database URL or fail.

    Raises:
        ConfigError: If no database URL is configured
    """
    if not config.database.url:
        raise ConfigError(
            "DATABASE_URL is not set",
            details="Set DATABASE_URL or database.url in configs/app.yaml",
        )
    return config.database.url
