"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from courier.config.paths import get_schedule_file, get_system_timezone

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


def _is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


class ConfigError(Exception):
    """Configuration error."""


class SchedulingConfig(BaseModel):
    """Configuration for the schedule engine.

    Absolute times ("2024-12-25 15:30", "tomorrow 9am") are read as wall-clock
    time in ``timezone``.
    """

    timezone: str = Field(default_factory=get_system_timezone)
    store_path: Path = Field(default_factory=get_schedule_file)
    # Safety-net sweep for timers that did not fire
    sweep_interval: float = Field(default=60.0, gt=0)
    # Longer delays are split into several timer wake-ups
    max_timer_delay: float = Field(default=86400.0, gt=0)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if not _is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @field_validator("store_path")
    @classmethod
    def _expand_store_path(cls, value: Path) -> Path:
        return value.expanduser()


class LoggingConfig(BaseModel):
    """Configuration for logging output."""

    level: LogLevel = "INFO"
    log_to_file: bool = False
    retention_days: int = Field(default=7, ge=1)

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class CourierConfig(BaseModel):
    """Root configuration model."""

    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
