"""Shared test fixtures and factories."""

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from courier.config.paths import ENV_VAR, get_courier_home
from courier.scheduling import (
    DeliveryError,
    Schedule,
    ScheduleEngine,
    ScheduleStore,
)

# 2024-01-01 10:00 UTC, a Monday
T0 = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def courier_home(monkeypatch, tmp_path: Path) -> Iterator[Path]:
    """Point COURIER_HOME at a temp dir and clear override env vars."""
    home = tmp_path / "home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.setenv("TZ", "UTC")
    monkeypatch.delenv("COURIER_TIMEZONE", raising=False)
    monkeypatch.delenv("COURIER_LOG_LEVEL", raising=False)
    monkeypatch.chdir(tmp_path)
    get_courier_home.cache_clear()
    yield home
    get_courier_home.cache_clear()


@pytest.fixture
def restore_logging():
    """Undo configure_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


# =============================================================================
# Scheduling Fixtures
# =============================================================================


class FakeClock:
    """Settable clock for engine tests."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingMessenger:
    """Messenger that records deliveries, optionally failing every send."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.attempts: list[tuple[str, str]] = []
        self.sent: list[tuple[str, str]] = []

    async def send(self, destination: str, text: str) -> None:
        self.attempts.append((destination, text))
        if self.fail:
            raise DeliveryError("transport unavailable")
        self.sent.append((destination, text))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def schedule_file(tmp_path: Path) -> Path:
    return tmp_path / "schedules.jsonl"


@pytest.fixture
def store(schedule_file: Path) -> ScheduleStore:
    return ScheduleStore(schedule_file)


@pytest.fixture
def make_schedule() -> Callable[..., Schedule]:
    """Factory for pending schedules created at T0."""

    def factory(
        schedule_id: str = "a1b2c3d4",
        *,
        created_at: datetime = T0,
        fire_in: timedelta = timedelta(minutes=30),
        destination: str = "chat-1",
        payload: str = "Call mom",
        owner: str = "u1",
    ) -> Schedule:
        return Schedule(
            id=schedule_id,
            created_at=created_at,
            fire_at=created_at + fire_in,
            destination=destination,
            payload=payload,
            owner=owner,
        )

    return factory


@pytest.fixture
def make_engine(
    schedule_file: Path, messenger: RecordingMessenger, clock: FakeClock
) -> Callable[..., ScheduleEngine]:
    """Factory for engines over a freshly loaded store on ``schedule_file``.

    Each call simulates a process start: a new store instance reads the file.
    """

    def factory(**kwargs) -> ScheduleEngine:
        store = ScheduleStore(schedule_file)
        store.load()
        kwargs.setdefault("clock", clock)
        return ScheduleEngine(store, kwargs.pop("messenger", messenger), **kwargs)

    return factory


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
