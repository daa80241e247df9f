"""Tests for configuration loading and models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from courier.config.loader import get_default_config, load_config
from courier.config.models import (
    ConfigError,
    CourierConfig,
    LoggingConfig,
    SchedulingConfig,
)


class TestSchedulingConfig:
    """Tests for SchedulingConfig model."""

    def test_defaults(self, courier_home):
        config = SchedulingConfig()
        assert config.timezone == "UTC"
        assert config.store_path == courier_home / "schedules.jsonl"
        assert config.sweep_interval == 60.0
        assert config.max_timer_delay == 86400.0

    def test_default_timezone_from_system(self, monkeypatch):
        monkeypatch.setenv("TZ", "Africa/Lagos")
        assert SchedulingConfig().timezone == "Africa/Lagos"

    def test_unknown_system_timezone_falls_back_to_utc(self, monkeypatch):
        monkeypatch.setattr(
            "courier.config.paths._timezone_candidates", lambda: ["Not/A_Zone"]
        )
        assert SchedulingConfig().timezone == "UTC"

    def test_invalid_timezone(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            SchedulingConfig(timezone="Mars/Olympus_Mons")

    @pytest.mark.parametrize("field", ["sweep_interval", "max_timer_delay"])
    def test_intervals_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            SchedulingConfig(**{field: 0})

    def test_store_path_expands_user(self):
        config = SchedulingConfig(store_path="~/schedules.jsonl")
        assert config.store_path == Path.home() / "schedules.jsonl"


class TestLoggingConfig:
    def test_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.log_to_file is False
        assert config.retention_days == 7

    def test_level_is_case_insensitive(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")


class TestLoadConfig:
    """Tests for load_config()."""

    def test_no_file_uses_defaults(self):
        config = load_config()
        assert isinstance(config, CourierConfig)
        assert config.scheduling.timezone == "UTC"
        assert config.logging.level == "INFO"

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text(
            """
[scheduling]
timezone = "Africa/Lagos"
sweep_interval = 30
store_path = "/var/lib/courier/schedules.jsonl"

[logging]
level = "debug"
log_to_file = true
"""
        )

        config = load_config(path)

        assert config.scheduling.timezone == "Africa/Lagos"
        assert config.scheduling.sweep_interval == 30.0
        assert config.scheduling.store_path == Path("/var/lib/courier/schedules.jsonl")
        assert config.logging.level == "DEBUG"
        assert config.logging.log_to_file is True

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_finds_config_in_current_directory(self, tmp_path):
        (tmp_path / "config.toml").write_text('[scheduling]\ntimezone = "Europe/London"\n')
        assert load_config().scheduling.timezone == "Europe/London"

    def test_finds_config_in_courier_home(self, courier_home):
        courier_home.mkdir()
        (courier_home / "config.toml").write_text("[logging]\nretention_days = 30\n")
        assert load_config().logging.retention_days == 30

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[scheduling\ntimezone = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[scheduling]\ntimezone = "Nowhere/Special"\n')
        with pytest.raises(ConfigError, match="Unknown timezone"):
            load_config(path)

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text('[scheduling]\ntimezone = "Europe/London"\n')
        monkeypatch.setenv("COURIER_TIMEZONE", "Africa/Lagos")
        monkeypatch.setenv("COURIER_LOG_LEVEL", "warning")

        config = load_config(path)

        assert config.scheduling.timezone == "Africa/Lagos"
        assert config.logging.level == "WARNING"

    def test_invalid_env_override(self, monkeypatch):
        monkeypatch.setenv("COURIER_TIMEZONE", "Bogus/Zone")
        with pytest.raises(ConfigError):
            load_config()


class TestGetDefaultConfig:
    def test_returns_defaults(self):
        config = get_default_config()
        assert config.scheduling.sweep_interval == 60.0
        assert config.logging.retention_days == 7
