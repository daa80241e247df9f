"""Configuration module."""

from courier.config.loader import get_default_config, load_config
from courier.config.models import (
    ConfigError,
    CourierConfig,
    LoggingConfig,
    SchedulingConfig,
)
from courier.config.paths import (
    get_config_path,
    get_courier_home,
    get_logs_path,
    get_schedule_file,
    get_system_timezone,
)

__all__ = [
    "ConfigError",
    "CourierConfig",
    "LoggingConfig",
    "SchedulingConfig",
    "get_config_path",
    "get_courier_home",
    "get_default_config",
    "get_logs_path",
    "get_schedule_file",
    "get_system_timezone",
    "load_config",
]
