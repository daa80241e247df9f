"""Scheduling error taxonomy.

Every failure the engine can surface to a caller is one of these types.
Cancellation outcomes (not found, not owner) are ``CancelResult`` members,
not exceptions.
"""

from __future__ import annotations

from datetime import datetime


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class ParseError(SchedulingError, ValueError):
    """A time expression matched no grammar or had an invalid field."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Could not parse time {expression!r}: {reason}")


class PastTimeError(SchedulingError, ValueError):
    """The resolved instant is not strictly after now."""

    def __init__(self, fire_at: datetime, now: datetime) -> None:
        self.fire_at = fire_at
        self.now = now
        super().__init__(
            f"Time {fire_at.isoformat()} is not in the future (now {now.isoformat()})"
        )


class StoreIOError(SchedulingError, OSError):
    """Reading or writing the schedule file failed."""


class StoreLockedError(StoreIOError):
    """Another process holds the schedule store."""


class DeliveryError(SchedulingError):
    """A messenger could not deliver a payload."""
