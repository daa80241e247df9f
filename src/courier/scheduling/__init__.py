"""Scheduling subsystem: durable one-shot message delivery.

Public API:
- ScheduleEngine: Creates, lists, cancels, and fires schedules
- ScheduleStore: JSONL-backed snapshot of pending schedules
- TimeExpressionParser: Resolves "30min", "tomorrow 9am", etc. to instants
- Messenger: Delivery collaborator protocol (plus adapters)

Types:
- Schedule: A single one-shot delivery intent
- ScheduleState / CancelResult: Lifecycle and cancel outcomes
"""

from courier.scheduling.engine import ScheduleEngine, create_schedule_engine
from courier.scheduling.errors import (
    DeliveryError,
    ParseError,
    PastTimeError,
    SchedulingError,
    StoreIOError,
    StoreLockedError,
)
from courier.scheduling.formatting import (
    format_countdown,
    format_delay,
    format_fire_at,
)
from courier.scheduling.messenger import (
    ConsoleMessenger,
    MessageSender,
    Messenger,
    RoutingMessenger,
    SenderMessenger,
)
from courier.scheduling.parser import (
    ParsedExpression,
    TimeExpressionParser,
    parse_time_expression,
    split_time_expression,
)
from courier.scheduling.store import ScheduleStore
from courier.scheduling.types import CancelResult, Clock, Schedule, ScheduleState

__all__ = [
    "CancelResult",
    "Clock",
    "ConsoleMessenger",
    "DeliveryError",
    "MessageSender",
    "Messenger",
    "ParseError",
    "ParsedExpression",
    "PastTimeError",
    "RoutingMessenger",
    "Schedule",
    "ScheduleEngine",
    "ScheduleState",
    "ScheduleStore",
    "SchedulingError",
    "SenderMessenger",
    "StoreIOError",
    "StoreLockedError",
    "TimeExpressionParser",
    "create_schedule_engine",
    "format_countdown",
    "format_delay",
    "format_fire_at",
    "parse_time_expression",
    "split_time_expression",
]
