"""Messenger collaborator interface and transport adapters.

The engine only knows ``Messenger.send(destination, text)``. The host bot
runtime supplies the real transport; these adapters cover the common shapes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol

from rich.console import Console
from rich.markup import escape

from courier.scheduling.errors import DeliveryError

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    """Delivers a payload to a destination. Raises on failure."""

    async def send(self, destination: str, text: str) -> None: ...


class MessageSender(Protocol):
    """Chat transport send function. Returns the sent message ID."""

    async def __call__(self, chat_id: str, text: str) -> str: ...


class SenderMessenger:
    """Adapts a single chat transport send function."""

    def __init__(self, sender: MessageSender) -> None:
        self._sender = sender

    async def send(self, destination: str, text: str) -> None:
        message_id = await self._sender(destination, text)
        logger.debug(
            "message_sent",
            extra={"messaging.chat_id": destination, "messaging.message_id": message_id},
        )


class RoutingMessenger:
    """Routes ``"<provider>:<chat_id>"`` destinations to per-provider senders.

    Destinations without a provider prefix go to ``default_provider`` when one
    is configured.
    """

    def __init__(
        self,
        senders: Mapping[str, MessageSender],
        default_provider: str | None = None,
    ) -> None:
        self._senders = dict(senders)
        self._default_provider = default_provider

    def resolve(self, destination: str) -> tuple[str, str]:
        """Split a destination into (provider, chat_id)."""
        provider, sep, chat_id = destination.partition(":")
        if sep and provider in self._senders:
            return provider, chat_id
        if self._default_provider is not None:
            return self._default_provider, destination
        raise DeliveryError(f"No sender configured for destination {destination!r}")

    async def send(self, destination: str, text: str) -> None:
        provider, chat_id = self.resolve(destination)
        sender = self._senders.get(provider)
        if sender is None:
            raise DeliveryError(f"No sender configured for provider {provider!r}")
        message_id = await sender(chat_id, text)
        logger.debug(
            "message_sent",
            extra={
                "messaging.provider": provider,
                "messaging.chat_id": chat_id,
                "messaging.message_id": message_id,
            },
        )


class ConsoleMessenger:
    """Prints deliveries to the terminal. Used by ``courier run``."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    async def send(self, destination: str, text: str) -> None:
        self._console.print(f"[bold cyan]-> {escape(destination)}[/bold cyan] {escape(text)}")
