"""CLI module."""

from courier.cli.app import app

__all__ = ["app"]
