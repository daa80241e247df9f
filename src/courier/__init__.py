"""Courier: durable one-shot scheduled message delivery."""

__version__ = "0.1.0"
