"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from courier.cli.commands import schedule

app = typer.Typer(
    name="courier",
    help="Courier - durable scheduled message delivery",
    no_args_is_help=True,
)

schedule.register(app)


@app.command()
def run(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
        ),
    ] = None,
) -> None:
    """Run the schedule engine until interrupted.

    Deliveries are printed to the terminal. Pending schedules from earlier
    runs are restored, and any that came due while stopped are sent at once.
    """
    import asyncio

    from courier.cli.console import console, error, load_config_or_exit
    from courier.scheduling import StoreLockedError

    courier_config = load_config_or_exit(config)

    async def run_engine() -> None:
        import logging
        import signal as signal_module

        from courier.logging import configure_logging
        from courier.scheduling import (
            ConsoleMessenger,
            ScheduleStore,
            create_schedule_engine,
        )

        configure_logging(
            courier_config.logging.level,
            use_rich=True,
            log_to_file=courier_config.logging.log_to_file,
            retention_days=courier_config.logging.retention_days,
        )
        logger = logging.getLogger(__name__)

        store = ScheduleStore(courier_config.scheduling.store_path)
        with store.locked():
            console.print("[bold]Loading schedules...[/bold]")
            engine = create_schedule_engine(
                courier_config.scheduling, ConsoleMessenger(console), store=store
            )

            shutdown_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal_module.SIGTERM, signal_module.SIGINT):
                loop.add_signal_handler(sig, shutdown_event.set)

            await engine.start()
            console.print(
                f"[bold green]Engine running[/bold green] "
                f"({engine.pending_count} pending, zone {engine.timezone})"
            )
            try:
                await shutdown_event.wait()
            finally:
                logger.info("schedule_engine_stopping")
                await engine.stop()

    try:
        asyncio.run(run_engine())
    except StoreLockedError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        pass
    console.print("\n[bold yellow]Engine stopped[/bold yellow]")


if __name__ == "__main__":
    app()
