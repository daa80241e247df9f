"""Schedule management commands."""

from __future__ import annotations

import asyncio
from builtins import list as builtin_list
from collections.abc import Coroutine
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer

from courier.cli.console import (
    console,
    create_table,
    dim,
    error,
    load_config_or_exit,
    success,
    warning,
)

if TYPE_CHECKING:
    from courier.config.models import CourierConfig
    from courier.scheduling import Schedule, ScheduleEngine, ScheduleStore

app = typer.Typer(
    name="schedule",
    help="Manage scheduled deliveries.",
    no_args_is_help=True,
)

# Owner recorded for schedules created from the command line
CLI_OWNER = "cli"

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file"),
]


def register(root: typer.Typer) -> None:
    root.add_typer(app, name="schedule")


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run an async schedule operation, mapping failures to exit code 1."""
    from courier.scheduling import SchedulingError, StoreLockedError

    try:
        asyncio.run(coro)
    except StoreLockedError as e:
        error(str(e))
        dim("Stop `courier run` first, or try again in a moment")
        raise typer.Exit(1) from None
    except (SchedulingError, ValueError) as e:
        error(str(e))
        raise typer.Exit(1) from None


def _create_engine(
    config: CourierConfig, store: ScheduleStore, *, locked: bool = True
) -> ScheduleEngine:
    from courier.scheduling import ConsoleMessenger, create_schedule_engine

    return create_schedule_engine(
        config.scheduling, ConsoleMessenger(console), store=store, quarantine=locked
    )


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


@app.command("list")
def list_cmd(
    owner: Annotated[
        str | None, typer.Option("--owner", "-o", help="Only this owner's schedules")
    ] = None,
    config: ConfigOption = None,
) -> None:
    """List pending schedules, soonest first."""
    _run(_schedule_list(load_config_or_exit(config), owner))


@app.command("add")
def add_cmd(
    expression: Annotated[
        str,
        typer.Argument(help='When to deliver, e.g. "30min", "tomorrow 9am"'),
    ],
    message: Annotated[str, typer.Argument(help="Text to deliver")],
    destination: Annotated[
        str, typer.Option("--to", "-t", help="Destination address (chat ID)")
    ],
    owner: Annotated[
        str, typer.Option("--owner", "-o", help="Owner allowed to cancel it")
    ] = CLI_OWNER,
    config: ConfigOption = None,
) -> None:
    """Schedule a one-shot message.

    Examples:
        courier schedule add 30min "Call mom" --to telegram:12345
        courier schedule add "2024-12-25 09:00" "Merry Christmas" --to chat-1
    """
    _run(
        _schedule_add(
            load_config_or_exit(config), expression, message, destination, owner
        )
    )


@app.command("cancel")
def cancel_cmd(
    schedule_id: Annotated[str, typer.Argument(help="Schedule ID (8-char hex)")],
    owner: Annotated[
        str, typer.Option("--owner", "-o", help="Owner of the schedule")
    ] = CLI_OWNER,
    config: ConfigOption = None,
) -> None:
    """Cancel a pending schedule."""
    _run(_schedule_cancel(load_config_or_exit(config), schedule_id, owner))


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


async def _schedule_list(config: CourierConfig, owner: str | None) -> None:
    from courier.scheduling import ScheduleStore, format_countdown, format_fire_at
    from courier.scheduling.types import utc_now

    store = ScheduleStore(config.scheduling.store_path)
    # Read without the writer lock; a running `courier run` may own the file
    engine = _create_engine(config, store, locked=False)

    schedules: builtin_list[Schedule]
    if owner is not None:
        schedules = await engine.list(owner)
    else:
        schedules = sorted(store.entries(), key=lambda s: (s.fire_at, s.id))

    if not schedules:
        warning("No scheduled messages found")
        return

    now = utc_now()
    table = create_table(
        None,
        [
            ("ID", "dim"),
            ("Owner", ""),
            ("Destination", ""),
            ("Message", ""),
            ("Fires At", ""),
            ("Countdown", "cyan"),
        ],
    )
    for schedule in schedules:
        table.add_row(
            schedule.id,
            schedule.owner,
            _truncate(schedule.destination, 20),
            _truncate(schedule.payload, 40),
            format_fire_at(schedule.fire_at, engine.timezone),
            format_countdown(schedule.fire_at, now),
        )

    console.print(table)
    dim(f"Total: {len(schedules)} schedule(s)")


async def _schedule_add(
    config: CourierConfig,
    expression: str,
    message: str,
    destination: str,
    owner: str,
) -> None:
    from courier.scheduling import ScheduleStore, format_countdown, format_fire_at

    store = ScheduleStore(config.scheduling.store_path)
    with store.locked():
        engine = _create_engine(config, store)
        try:
            schedule = await engine.create(destination, expression, message, owner)
        finally:
            await engine.stop()

    success(
        f"Scheduled {schedule.id} for "
        f"{format_fire_at(schedule.fire_at, engine.timezone)} "
        f"({format_countdown(schedule.fire_at, schedule.created_at)})"
    )
    dim("Start `courier run` to deliver it")


async def _schedule_cancel(config: CourierConfig, schedule_id: str, owner: str) -> None:
    from courier.scheduling import CancelResult, ScheduleStore

    store = ScheduleStore(config.scheduling.store_path)
    with store.locked():
        engine = _create_engine(config, store)
        schedule = store.get(schedule_id)
        try:
            result = await engine.cancel(schedule_id, owner)
        finally:
            await engine.stop()

    if result == CancelResult.OK and schedule is not None:
        success(f"Cancelled {schedule_id}: {_truncate(schedule.payload, 50)}")
    elif result == CancelResult.NOT_OWNER:
        error(f"Schedule {schedule_id} belongs to another owner")
        raise typer.Exit(1)
    else:
        error(f"No schedule found with ID {schedule_id}")
        raise typer.Exit(1)
