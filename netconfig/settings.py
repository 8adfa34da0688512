"""Engine settings.

Settings are resolved from three layers, later layers overriding earlier ones:

1. Defaults declared on the pydantic models below
2. An optional JSON or YAML settings file
3. Environment variables prefixed with ``NETCONFIG_`` (``__`` separates
   nested keys, e.g. ``NETCONFIG_APPLY__MAX_WORKERS=2``)
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .errors import InternalError

logger = logging.getLogger(__name__)

ENV_PREFIX = "NETCONFIG_"
ENV_NESTED_SEPARATOR = "__"


class BaseSettings(BaseModel):
    """Base settings class with common functionality."""

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        use_enum_values=True,
    )


class StoreSettings(BaseSettings):
    """Backing config store settings."""

    path: Optional[Path] = Field(
        default=None,
        description="Config file backing the store (JSON or YAML); in-memory when unset",
    )
    history_size: int = Field(
        default=50, ge=0, description="Number of commit descriptions kept in memory"
    )


class ApplySettings(BaseSettings):
    """Asynchronous apply settings."""

    staging_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding pending-change files; in-memory when unset",
    )
    max_workers: int = Field(
        default=4, ge=1, le=64, description="Apply worker thread pool size"
    )
    thread_name_prefix: str = Field(
        default="netconfig-apply", description="Prefix for apply worker thread names"
    )


class LoggingSettings(BaseSettings):
    """Logging settings."""

    level: str = Field(default="INFO", description="Root log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log record format",
    )


class EngineSettings(BaseSettings):
    """Top-level engine settings."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    apply: ApplySettings = Field(default_factory=ApplySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _convert_env_value(value: str) -> Any:
    """Infer a Python value from an environment variable string."""
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    if lowered in ("null", "none"):
        return None

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.debug(f"Value looks like JSON but is not: {value}")

    return value


def load_environment(env: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """Collect ``NETCONFIG_`` environment variables into a nested dictionary.

    Args:
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Nested settings dictionary
    """
    env = os.environ if env is None else env
    config: dict[str, Any] = {}

    for env_key, env_value in env.items():
        if not env_key.startswith(ENV_PREFIX):
            continue

        parts = env_key[len(ENV_PREFIX) :].lower().split(ENV_NESTED_SEPARATOR)
        target = config
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = _convert_env_value(env_value)
        logger.debug(f"Loaded env var: {env_key}")

    return config


def load_settings_file(path: Union[str, Path]) -> dict[str, Any]:
    """Read a JSON or YAML settings file.

    Args:
        path: Settings file path; the format is taken from its suffix

    Returns:
        Settings dictionary (empty when the file does not exist)
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Settings file not found: {path}, using defaults")
        return {}

    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)

    if not isinstance(data, dict):
        raise InternalError(f"Settings file {path} must contain a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> EngineSettings:
    """Resolve engine settings from defaults, a settings file and the environment.

    Args:
        path: Optional JSON or YAML settings file
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated EngineSettings
    """
    data: dict[str, Any] = {}
    if path is not None:
        data = load_settings_file(path)
    data = _deep_merge(data, load_environment(env))
    return EngineSettings.model_validate(data)


def configure_logging(settings: LoggingSettings) -> None:
    """Apply logging settings to the root logger."""
    level = getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.format)
    logging.getLogger().setLevel(level)
