"""CLI command modules."""

from courier.cli.commands import schedule

__all__ = ["schedule"]
