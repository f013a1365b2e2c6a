"""
Harper Chat Provider Base

The provider is an external collaborator: Harper only needs "send the
conversation, get assistant text back". Tool calls come back as bracket
commands inside that text and go through the normal extraction pipeline,
so no provider-specific tool-use format is involved.

The base class wraps ``_complete_impl`` with retry and exponential backoff
and raises ProviderError once retries are exhausted.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from harper.core.models import Message
from harper.exceptions import ProviderError
from harper.logging import get_logger

logger = get_logger("harper.providers")


class ChatProvider(ABC):
    """Abstract text-completion provider."""

    def __init__(self, model: str, max_tokens: int = 2048, max_retries: int = 3, retry_base_delay: float = 1.0):
        self.model = model
        self.max_tokens = max_tokens
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def _complete_impl(self, messages: list[Message], system: str | None = None) -> str:
        ...

    async def complete(self, messages: list[Message], system: str | None = None) -> str:
        """Return the assistant reply for ``messages``.

        Raises:
            ProviderError: After ``max_retries`` failed attempts.
        """
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                return await self._complete_impl(messages, system=system)
            except Exception as e:
                last_error = e
                logger.warning("Provider call failed (attempt %d): %s", attempt + 1, e)
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_base_delay * (2 ** attempt))

        raise ProviderError(
            self.name, f"failed after {self._max_retries} attempts: {last_error}"
        ) from last_error


def to_wire_messages(messages: list[Message]) -> list[dict[str, str]]:
    """Convert conversation messages to the role/content dicts providers expect.

    System messages are dropped (they travel separately); consecutive
    messages with the same role are merged so roles alternate.
    """
    wire: list[dict[str, str]] = []
    for message in messages:
        if message.role == "system":
            continue
        if wire and wire[-1]["role"] == message.role:
            wire[-1]["content"] += "\n\n" + message.content
        else:
            wire.append({"role": message.role, "content": message.content})
    return wire
