"""Tests for CLI commands."""

import json

import pytest

from courier.cli.app import app
from courier.cli.console import console
from courier.config.paths import get_schedule_file
from courier.scheduling import ScheduleStore


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep rich from wrapping table cells and long messages."""
    monkeypatch.setattr(console, "width", 240)


def _add(cli_runner, *args):
    return cli_runner.invoke(app, ["schedule", "add", *args])


def _stored_records() -> list[dict]:
    path = get_schedule_file()
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestScheduleAdd:
    def test_creates_schedule(self, cli_runner):
        result = _add(cli_runner, "30min", "Call mom", "--to", "chat-1", "--owner", "u1")

        assert result.exit_code == 0, result.output
        assert "Scheduled" in result.output
        records = _stored_records()
        assert len(records) == 1
        assert records[0]["destination"] == "chat-1"
        assert records[0]["payload"] == "Call mom"
        assert records[0]["owner"] == "u1"
        assert records[0]["id"] in result.output
        assert "Start `courier run` to deliver it" in result.output

    def test_default_owner(self, cli_runner):
        result = _add(cli_runner, "2h", "Stretch", "--to", "chat-1")

        assert result.exit_code == 0, result.output
        assert _stored_records()[0]["owner"] == "cli"

    def test_requires_destination(self, cli_runner):
        result = _add(cli_runner, "30min", "Call mom")

        assert result.exit_code != 0
        assert _stored_records() == []

    def test_unparseable_time(self, cli_runner):
        result = _add(cli_runner, "someday", "Call mom", "--to", "chat-1")

        assert result.exit_code == 1
        assert "Could not parse time" in result.output
        assert _stored_records() == []

    def test_past_time(self, cli_runner):
        result = _add(cli_runner, "2000-01-01 00:00", "Y2K", "--to", "chat-1")

        assert result.exit_code == 1
        assert "not in the future" in result.output

    def test_store_locked_by_runner(self, cli_runner):
        with ScheduleStore(get_schedule_file()).locked():
            result = _add(cli_runner, "30min", "Call mom", "--to", "chat-1")

        assert result.exit_code == 1
        assert "in use by another process" in result.output
        assert _stored_records() == []

    def test_missing_config_file(self, cli_runner, tmp_path):
        result = _add(
            cli_runner,
            "30min",
            "Call mom",
            "--to",
            "chat-1",
            "--config",
            str(tmp_path / "missing.toml"),
        )

        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestScheduleList:
    def test_empty(self, cli_runner):
        result = cli_runner.invoke(app, ["schedule", "list"])

        assert result.exit_code == 0, result.output
        assert "No scheduled messages found" in result.output

    def test_shows_pending(self, cli_runner):
        _add(cli_runner, "30min", "Call mom", "--to", "chat-1", "--owner", "u1")
        _add(cli_runner, "2h", "Dinner", "--to", "chat-2", "--owner", "u2")

        result = cli_runner.invoke(app, ["schedule", "list"])

        assert result.exit_code == 0, result.output
        assert "Call mom" in result.output
        assert "Dinner" in result.output
        assert "Total: 2 schedule(s)" in result.output
        assert result.output.index("Call mom") < result.output.index("Dinner")

    def test_malformed_store_left_for_lock_holder(self, cli_runner):
        path = get_schedule_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("not json\n")

        with ScheduleStore(path).locked():
            result = cli_runner.invoke(app, ["schedule", "list"])

        assert result.exit_code == 0, result.output
        assert "No scheduled messages found" in result.output
        assert path.read_text() == "not json\n"
        assert list(path.parent.glob("schedules.jsonl.corrupt-*")) == []

    def test_owner_filter(self, cli_runner):
        _add(cli_runner, "30min", "Call mom", "--to", "chat-1", "--owner", "u1")
        _add(cli_runner, "2h", "Dinner", "--to", "chat-2", "--owner", "u2")

        result = cli_runner.invoke(app, ["schedule", "list", "--owner", "u2"])

        assert result.exit_code == 0, result.output
        assert "Dinner" in result.output
        assert "Call mom" not in result.output

    def test_uses_configured_timezone(self, cli_runner, tmp_path):
        config_path = tmp_path / "courier.toml"
        config_path.write_text('[scheduling]\ntimezone = "Africa/Lagos"\n')
        _add(
            cli_runner,
            "2030-06-01 09:00",
            "Reminder",
            "--to",
            "chat-1",
            "--config",
            str(config_path),
        )

        result = cli_runner.invoke(
            app, ["schedule", "list", "--config", str(config_path)]
        )

        assert "2030-06-01 09:00 WAT" in result.output


class TestScheduleCancel:
    def _create(self, cli_runner, owner: str = "u1") -> str:
        _add(cli_runner, "30min", "Call mom", "--to", "chat-1", "--owner", owner)
        return _stored_records()[0]["id"]

    def test_owner_cancels(self, cli_runner):
        schedule_id = self._create(cli_runner)

        result = cli_runner.invoke(
            app, ["schedule", "cancel", schedule_id, "--owner", "u1"]
        )

        assert result.exit_code == 0, result.output
        assert f"Cancelled {schedule_id}" in result.output
        assert _stored_records() == []

    def test_non_owner_rejected(self, cli_runner):
        schedule_id = self._create(cli_runner)

        result = cli_runner.invoke(
            app, ["schedule", "cancel", schedule_id, "--owner", "u2"]
        )

        assert result.exit_code == 1
        assert "belongs to another owner" in result.output
        assert len(_stored_records()) == 1

    def test_unknown_id(self, cli_runner):
        result = cli_runner.invoke(app, ["schedule", "cancel", "deadbeef"])

        assert result.exit_code == 1
        assert "No schedule found with ID deadbeef" in result.output


class TestRun:
    def test_refuses_when_store_locked(self, cli_runner, restore_logging):
        with ScheduleStore(get_schedule_file()).locked():
            result = cli_runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "in use by another process" in result.output

    def test_invalid_config(self, cli_runner, tmp_path):
        config_path = tmp_path / "bad.toml"
        config_path.write_text('[scheduling]\nsweep_interval = -1\n')

        result = cli_runner.invoke(app, ["run", "--config", str(config_path)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
