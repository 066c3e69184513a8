"""
Configuration loader for toolbridge.

Loads and merges configuration from multiple sources:
1. Default values
2. Global config (~/.toolbridge/config.yaml)
3. An explicit config file (``--config``)
4. Environment variables (TOOLBRIDGE_*)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from toolbridge.config.merger import deep_merge, resolve_key_path, set_nested_value
from toolbridge.config.schema import Config
from toolbridge.storage.paths import get_global_config_path

logger = logging.getLogger(__name__)

ENV_PREFIX = "TOOLBRIDGE_"

# Variables that configure the loader itself rather than a config key
_RESERVED_ENV_VARS = {"TOOLBRIDGE_HOME"}


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary ({} for a missing or empty file).

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return content


def apply_env_overrides(
    config: dict[str, Any], environ: dict[str, str] | None = None
) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    ``TOOLBRIDGE_AUDIT_ENABLE=false`` sets ``audit.enable``;
    ``TOOLBRIDGE_MCP_DEFAULT_TIMEOUT_MS=5000`` sets ``mcp.default_timeout_ms``.

    Args:
        config: Configuration dictionary to modify.
        environ: Environment to read (os.environ if None).

    Returns:
        Configuration with environment overrides applied.
    """
    environ = os.environ if environ is None else environ

    for key, value in sorted(environ.items()):
        if not key.startswith(ENV_PREFIX) or key in _RESERVED_ENV_VARS:
            continue

        parts = [part for part in key[len(ENV_PREFIX) :].lower().split("_") if part]
        if not parts:
            continue

        key_path = resolve_key_path(config, parts)
        logger.debug(f"Config override from {key}: {key_path}")
        config = set_nested_value(config, key_path, _parse_env_value(value))

    return config


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to the appropriate type.

    Returns:
        Parsed value (bool, int, float, list or string).
    """
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False

    if re.match(r"^-?\d+$", value):
        return int(value)

    if re.match(r"^-?\d+\.\d+$", value):
        return float(value)

    # Comma-separated list
    if "," in value:
        return [item.strip() for item in value.split(",") if item.strip()]

    return value


def load_config(config_path: Path | None = None, skip_env: bool = False) -> Config:
    """
    Load and merge configuration from all sources.

    Args:
        config_path: Explicit config file merged over the global one.
        skip_env: Skip environment variable overrides.

    Returns:
        Merged and validated Config object.

    Raises:
        ConfigurationError: If a file is unreadable or the result is invalid.
    """
    config_dict = Config().model_dump()

    global_path = get_global_config_path()
    if global_path.exists():
        config_dict = deep_merge(config_dict, load_yaml_file(global_path))

    if config_path is not None:
        config_path = Path(config_path).expanduser()
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        config_dict = deep_merge(config_dict, load_yaml_file(config_path))

    if not skip_env:
        config_dict = apply_env_overrides(config_dict)

    try:
        return Config.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


# Singleton for cached config
_cached_config: Config | None = None


def get_config(reload: bool = False) -> Config:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from disk.

    Returns:
        Config instance.
    """
    global _cached_config

    if _cached_config is None or reload:
        _cached_config = load_config()

    return _cached_config


def set_config(config: Config) -> None:
    """Replace the cached configuration (used by the CLI's --config)."""
    global _cached_config
    _cached_config = config


def clear_config_cache() -> None:
    """Clear the cached configuration."""
    global _cached_config
    _cached_config = None
