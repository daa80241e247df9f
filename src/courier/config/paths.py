"""Filesystem locations for Courier state.

Config, the schedule snapshot, and daily logs all live under one directory,
``~/.courier`` unless COURIER_HOME points elsewhere.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

ENV_VAR = "COURIER_HOME"

CONFIG_FILENAME = "config.toml"
SCHEDULE_FILENAME = "schedules.jsonl"
LOGS_DIRNAME = "logs"


def _timezone_candidates() -> list[str]:
    candidates = []
    # POSIX allows a leading colon: TZ=":Europe/London"
    if tz := os.environ.get("TZ", "").lstrip(":"):
        candidates.append(tz)

    try:
        candidates.append(Path("/etc/timezone").read_text().strip())
    except OSError:
        pass

    try:
        _, sep, name = str(Path("/etc/localtime").resolve()).partition("zoneinfo/")
        if sep:
            candidates.append(name)
    except OSError:
        pass

    return [c for c in candidates if c]


def get_system_timezone() -> str:
    """First IANA zone name found in TZ, /etc/timezone, or /etc/localtime.

    Names zoneinfo cannot load are skipped; with none left this is "UTC".
    """
    for name in _timezone_candidates():
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("system_timezone_unknown", extra={"schedule.timezone": name})
            continue
        return name
    return "UTC"


@lru_cache(maxsize=1)
def get_courier_home() -> Path:
    """Base directory for Courier state (COURIER_HOME or ``~/.courier``)."""
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".courier"


def get_config_path() -> Path:
    return get_courier_home() / CONFIG_FILENAME


def get_schedule_file() -> Path:
    """Pending schedules snapshot, one JSON object per line."""
    return get_courier_home() / SCHEDULE_FILENAME


def get_logs_path() -> Path:
    return get_courier_home() / LOGS_DIRNAME
