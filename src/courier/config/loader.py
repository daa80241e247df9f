"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from courier.config.models import ConfigError, CourierConfig
from courier.config.paths import get_config_path

# (section, key, environment variable)
ENV_OVERRIDES = [
    ("scheduling", "timezone", "COURIER_TIMEZONE"),
    ("logging", "level", "COURIER_LOG_LEVEL"),
]


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.courier/config.toml (or COURIER_HOME)
        Path("/etc/courier/config.toml"),  # System-wide
    ]


def _find_config_file(path: Path | None) -> Path | None:
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return config_path

    for default_path in _get_default_config_paths():
        expanded = default_path.expanduser()
        if expanded.exists():
            return expanded
    return None


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Environment variables win over file values."""
    for section_name, key, env_var in ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if not value:
            continue
        section = config.setdefault(section_name, {})
        if isinstance(section, dict):
            section[key] = value
    return config


def load_config(path: Path | None = None) -> CourierConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default
            locations and falls back to defaults when none exists.

    Returns:
        Validated CourierConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the config file is invalid.
    """
    config_path = _find_config_file(path)

    raw_config: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    raw_config = _apply_env_overrides(raw_config)

    try:
        return CourierConfig.model_validate(raw_config)
    except ValidationError as e:
        source = config_path or "environment"
        raise ConfigError(f"Invalid configuration ({source}): {e}") from e


def get_default_config() -> CourierConfig:
    """Get a default configuration for development/testing."""
    return CourierConfig()
