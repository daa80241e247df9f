"""Human-readable time formatting for confirmations and listings."""

from datetime import datetime
from zoneinfo import ZoneInfo


def format_delay(seconds: float) -> str:
    """Format a delay in human-readable form."""
    minutes = seconds / 60
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"~{int(minutes)} minutes"
    hours = minutes / 60
    if hours < 24:
        return f"~{hours:.1f} hours"
    days = hours / 24
    return f"~{days:.1f} days"


def format_countdown(fire_at: datetime, now: datetime) -> str:
    """Format the time remaining until ``fire_at`` (e.g. "in 1h 30m")."""
    if fire_at <= now:
        return "now"

    total_seconds = int((fire_at - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    if hours < 24:
        return f"in {hours}h {minutes}m" if minutes else f"in {hours}h"

    days, hours = divmod(hours, 24)
    return f"in {days}d {hours}h" if hours else f"in {days}d"


def format_fire_at(fire_at: datetime, zone: ZoneInfo | str) -> str:
    """Render an instant as local wall-clock time, e.g. "2024-12-25 15:30 WAT"."""
    tz = zone if isinstance(zone, ZoneInfo) else ZoneInfo(zone)
    local = fire_at.astimezone(tz)
    return f"{local:%Y-%m-%d %H:%M} {local.tzname()}"
