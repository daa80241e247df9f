"""Schedule engine: owns pending schedules, their timers, and delivery.

Every pending schedule gets one event-loop timer. A periodic sweep backs the
timers up, firing anything overdue that a timer did not deliver. Deliveries
are claimed before they are sent, so a schedule is attempted at most once per
process whichever path reaches it first.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from builtins import list as builtin_list
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from courier.scheduling.errors import PastTimeError, StoreIOError
from courier.scheduling.formatting import format_delay
from courier.scheduling.parser import TimeExpressionParser
from courier.scheduling.store import ScheduleStore
from courier.scheduling.types import (
    CancelResult,
    Clock,
    Schedule,
    ScheduleState,
    utc_now,
)

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo

    from courier.config.models import SchedulingConfig
    from courier.scheduling.messenger import Messenger

logger = logging.getLogger(__name__)

# Log a sweep heartbeat every N sweeps (~1 hour at the default interval)
HEARTBEAT_SWEEPS = 60

# Deliveries later than this are logged as late
LATE_DELIVERY_SECONDS = 60.0


class ScheduleEngine:
    """Creates, lists, cancels, and fires one-shot schedules.

    The store must be loaded before ``reconcile()`` or ``start()`` is called.

    Example:
        store = ScheduleStore(get_schedule_file())
        store.load()
        engine = ScheduleEngine(store, messenger, timezone="Africa/Lagos")
        await engine.start()

        schedule = await engine.create("chat-1", "30min", "Call mom", owner="u1")
    """

    def __init__(
        self,
        store: ScheduleStore,
        messenger: Messenger,
        *,
        timezone: str | ZoneInfo = "UTC",
        clock: Clock | None = None,
        sweep_interval: float = 60.0,
        max_timer_delay: float = 86400.0,
    ) -> None:
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")
        if max_timer_delay <= 0:
            raise ValueError("max_timer_delay must be positive")

        self._store = store
        self._messenger = messenger
        self._parser = TimeExpressionParser(timezone)
        self._clock = clock or utc_now
        self._sweep_interval = sweep_interval
        self._max_timer_delay = max_timer_delay

        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._in_flight: set[str] = set()
        self._deliveries: set[asyncio.Task[Schedule]] = set()
        self._sweep_task: asyncio.Task[None] | None = None
        self._running = False
        self._sweep_count = 0

    @property
    def store(self) -> ScheduleStore:
        return self._store

    @property
    def timezone(self) -> ZoneInfo:
        return self._parser.zone

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending_count(self) -> int:
        return sum(1 for s in self._store.entries() if s.id not in self._in_flight)

    @property
    def armed_ids(self) -> frozenset[str]:
        return frozenset(self._timers)

    @property
    def in_flight_ids(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create(
        self,
        destination: str,
        expression: str,
        payload: str,
        owner: str,
        now: datetime | None = None,
    ) -> Schedule:
        """Parse ``expression`` and schedule ``payload`` for delivery.

        Returns only after the schedule is on disk.

        Raises:
            ParseError: If the expression is not understood.
            PastTimeError: If it resolves to now or earlier.
            ValueError: If destination, payload, or owner is empty.
            StoreIOError: If the schedule could not be persisted.
        """
        now = now or self._clock()
        fire_at = self._parser.parse(expression, now)
        return self._schedule(destination, fire_at, payload, owner, now)

    async def create_from_text(
        self,
        destination: str,
        text: str,
        owner: str,
        now: datetime | None = None,
    ) -> Schedule:
        """Schedule from reminder-style text such as ``"30min Call mom"``."""
        now = now or self._clock()
        parsed = self._parser.split(text, now)
        return self._schedule(destination, parsed.fire_at, parsed.message, owner, now)

    async def list(self, owner: str) -> builtin_list[Schedule]:
        """Pending schedules for ``owner``, soonest first."""
        pending = [
            s
            for s in self._store.entries()
            if s.owner == owner and s.id not in self._in_flight
        ]
        pending.sort(key=lambda s: (s.fire_at, s.id))
        return pending

    async def cancel(self, schedule_id: str, owner: str) -> CancelResult:
        """Cancel a pending schedule on behalf of ``owner``.

        Raises:
            StoreIOError: If the removal could not be persisted; the schedule
                stays pending and armed.
        """
        schedule = self._store.get(schedule_id)
        if schedule is None or schedule_id in self._in_flight:
            logger.debug("schedule_cancel_not_found", extra={"schedule.id": schedule_id})
            return CancelResult.NOT_FOUND

        if schedule.owner != owner:
            logger.warning(
                "schedule_cancel_denied",
                extra={"schedule.id": schedule_id, "schedule.requested_by": owner},
            )
            return CancelResult.NOT_OWNER

        self._store.remove(schedule_id)
        self._disarm(schedule_id)
        logger.info(
            "schedule_cancelled",
            extra={
                "schedule.id": schedule_id,
                "schedule.state": ScheduleState.CANCELLED.value,
            },
        )
        return CancelResult.OK

    async def reconcile(self, now: datetime | None = None) -> builtin_list[Schedule]:
        """Rebuild timers from the loaded store and fire anything overdue.

        Overdue schedules are delivered late rather than dropped. Returns the
        schedules fired during reconciliation in their terminal state.
        """
        now = now or self._clock()
        overdue: builtin_list[Schedule] = []
        armed = 0

        for schedule in self._store.entries():
            if schedule.id in self._in_flight:
                continue
            if schedule.is_due(now):
                overdue.append(schedule)
            elif schedule.id not in self._timers:
                self._arm(schedule, now)
                armed += 1

        logger.info(
            "schedule_reconciled",
            extra={
                "schedule.count": len(self._store),
                "schedule.armed": armed,
                "schedule.overdue": len(overdue),
            },
        )
        return await self._fire_all(overdue)

    async def sweep(self, now: datetime | None = None) -> builtin_list[Schedule]:
        """Fire every overdue schedule not already being delivered."""
        now = now or self._clock()
        due = [
            s
            for s in self._store.entries()
            if s.id not in self._in_flight and s.is_due(now)
        ]
        if due:
            logger.info(
                "schedule_sweep_due",
                extra={
                    "schedule.due": len(due),
                    "schedule.ids": [s.id for s in due],
                },
            )
        return await self._fire_all(due)

    async def start(self) -> None:
        """Reconcile persisted schedules and start the periodic sweep."""
        if self._running:
            return
        self._running = True
        await self.reconcile()
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "schedule_engine_started",
            extra={
                "file.path": str(self._store.path),
                "schedule.timezone": str(self.timezone),
            },
        )

    async def stop(self) -> None:
        """Stop sweeping, disarm timers, and wait for in-progress deliveries."""
        self._running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _schedule(
        self,
        destination: str,
        fire_at: datetime,
        payload: str,
        owner: str,
        now: datetime,
    ) -> Schedule:
        if fire_at <= now:
            raise PastTimeError(fire_at, now)
        if not destination:
            raise ValueError("destination is required")
        if not payload.strip():
            raise ValueError("payload is required")
        if not owner:
            raise ValueError("owner is required")

        schedule = Schedule(
            id=self._new_id(),
            created_at=now,
            fire_at=fire_at,
            destination=destination,
            payload=payload,
            owner=owner,
        )
        self._store.insert(schedule)
        self._arm(schedule, now)
        logger.info(
            "schedule_created",
            extra={
                "schedule.id": schedule.id,
                "schedule.fire_at": fire_at.isoformat(),
                "schedule.owner": owner,
                "messaging.destination": destination,
                "schedule.payload_preview": payload[:50],
            },
        )
        return schedule

    def _new_id(self) -> str:
        while True:
            candidate = uuid.uuid4().hex[:8]
            if candidate not in self._store and candidate not in self._in_flight:
                return candidate

    def _arm(self, schedule: Schedule, now: datetime) -> None:
        self._disarm(schedule.id)
        delay = max(0.0, (schedule.fire_at - now).total_seconds())
        loop = asyncio.get_running_loop()
        self._timers[schedule.id] = loop.call_later(
            min(delay, self._max_timer_delay), self._on_timer, schedule.id
        )

    def _disarm(self, schedule_id: str) -> None:
        timer = self._timers.pop(schedule_id, None)
        if timer is not None:
            timer.cancel()

    def _on_timer(self, schedule_id: str) -> None:
        self._timers.pop(schedule_id, None)
        schedule = self._store.get(schedule_id)
        if schedule is None or schedule_id in self._in_flight:
            return

        now = self._clock()
        if not schedule.is_due(now):
            # Capped timer woke early; wait out the remainder
            self._arm(schedule, now)
            return
        self._dispatch(schedule)

    def _dispatch(self, schedule: Schedule) -> asyncio.Task[Schedule]:
        # Claim before the first await so no other path can fire it
        self._in_flight.add(schedule.id)
        self._disarm(schedule.id)
        task = asyncio.create_task(self._deliver(schedule))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return task

    async def _fire_all(
        self, schedules: builtin_list[Schedule]
    ) -> builtin_list[Schedule]:
        if not schedules:
            return []
        tasks = [self._dispatch(s) for s in schedules]
        return builtin_list(await asyncio.gather(*tasks))

    async def _deliver(self, schedule: Schedule) -> Schedule:
        lateness = (self._clock() - schedule.fire_at).total_seconds()
        if lateness > LATE_DELIVERY_SECONDS:
            logger.warning(
                "scheduled_delivery_late",
                extra={
                    "schedule.id": schedule.id,
                    "schedule.delay": format_delay(lateness),
                },
            )

        try:
            await self._messenger.send(schedule.destination, schedule.payload)
        except Exception as e:
            final = replace(schedule, state=ScheduleState.FAILED)
            logger.error(
                "scheduled_delivery_failed",
                extra={
                    "schedule.id": schedule.id,
                    "messaging.destination": schedule.destination,
                    "error.message": str(e),
                },
                exc_info=True,
            )
        else:
            final = replace(schedule, state=ScheduleState.DELIVERED)
            logger.info(
                "scheduled_delivery_sent",
                extra={
                    "schedule.id": schedule.id,
                    "messaging.destination": schedule.destination,
                },
            )

        try:
            self._store.remove(schedule.id)
        except StoreIOError as e:
            # Stays claimed so this process never sends it again
            logger.error(
                "scheduled_delivery_remove_failed",
                extra={"schedule.id": schedule.id, "error.message": str(e)},
            )
            return final

        self._in_flight.discard(schedule.id)
        return final

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._sweep_interval)
            try:
                self._sweep_count += 1
                if self._sweep_count % HEARTBEAT_SWEEPS == 0:
                    logger.info(
                        "schedule_sweep_heartbeat",
                        extra={
                            "sweep.count": self._sweep_count,
                            "schedule.pending": self.pending_count,
                        },
                    )
                await self.sweep()
            except Exception as e:
                logger.error(
                    "schedule_sweep_error",
                    extra={"error.message": str(e)},
                    exc_info=True,
                )


def create_schedule_engine(
    config: SchedulingConfig,
    messenger: Messenger,
    *,
    store: ScheduleStore | None = None,
    clock: Clock | None = None,
    quarantine: bool = True,
) -> ScheduleEngine:
    """Create an engine over the configured store, loading it from disk.

    Pass ``store`` when the caller already holds its lock, so the load
    happens under the lock. Readers that do not hold the lock pass
    ``quarantine=False`` so a malformed file is left in place.
    """
    if store is None:
        store = ScheduleStore(config.store_path)
    store.load(quarantine=quarantine)
    return ScheduleEngine(
        store,
        messenger,
        timezone=config.timezone,
        clock=clock,
        sweep_interval=config.sweep_interval,
        max_timer_delay=config.max_timer_delay,
    )
