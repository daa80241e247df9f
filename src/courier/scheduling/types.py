"""Schedule types.

Public types:
- Schedule: A single one-shot delivery intent
- ScheduleState: Lifecycle state of a schedule
- CancelResult: Outcome of a cancel request
- Clock: Zero-argument callable returning an aware "now"
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class ScheduleState(StrEnum):
    """Lifecycle states. Everything but PENDING is terminal."""

    PENDING = "pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancelResult(StrEnum):
    """Outcome of ScheduleEngine.cancel()."""

    OK = "ok"
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"


_KNOWN_FIELDS = frozenset(
    {"id", "created_at", "fire_at", "destination", "payload", "owner"}
)


@dataclass(frozen=True)
class Schedule:
    """A persisted delivery intent.

    ``fire_at`` is fixed at creation and always later than ``created_at``.
    Both instants must carry a UTC offset.
    """

    id: str
    created_at: datetime
    fire_at: datetime
    destination: str
    payload: str
    owner: str
    state: ScheduleState = ScheduleState.PENDING
    # Unknown fields from the file, written back unchanged
    _extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("schedule id is required")
        for name in ("created_at", "fire_at"):
            value = getattr(self, name)
            if value.tzinfo is None or value.utcoffset() is None:
                raise ValueError(f"{name} must be timezone-aware")
        if self.fire_at <= self.created_at:
            raise ValueError("fire_at must be after created_at")

    @property
    def is_pending(self) -> bool:
        return self.state == ScheduleState.PENDING

    def is_due(self, now: datetime) -> bool:
        return self.fire_at <= now

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted record shape (state is not stored)."""
        data: dict[str, Any] = dict(self._extra)
        data.update(
            {
                "id": self.id,
                "created_at": self.created_at.isoformat(),
                "fire_at": self.fire_at.isoformat(),
                "destination": self.destination,
                "payload": self.payload,
                "owner": self.owner,
            }
        )
        return data

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schedule:
        """Build a pending schedule from a persisted record.

        Raises:
            ValueError: If a field is missing, mistyped, or breaks an invariant.
        """
        missing = [key for key in sorted(_KNOWN_FIELDS) if key not in data]
        if missing:
            raise ValueError(f"missing fields: {', '.join(missing)}")
        for key in ("id", "destination", "payload", "owner"):
            if not isinstance(data[key], str):
                raise ValueError(f"{key} must be a string")

        return cls(
            id=data["id"],
            created_at=_parse_instant(data["created_at"]),
            fire_at=_parse_instant(data["fire_at"]),
            destination=data["destination"],
            payload=data["payload"],
            owner=data["owner"],
            _extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )


def _parse_instant(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expected ISO-8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"instant {value!r} has no UTC offset")
    return parsed
