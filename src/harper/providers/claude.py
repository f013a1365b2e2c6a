"""
Harper Claude Provider

Wraps anthropic.AsyncAnthropic behind ChatProvider.
"""

from __future__ import annotations

from typing import Any

import anthropic

from harper.config import ProviderSettings
from harper.core.models import Message
from harper.providers.base import ChatProvider, to_wire_messages


class ClaudeProvider(ChatProvider):
    """Anthropic Claude via the official SDK."""

    def __init__(self, settings: ProviderSettings, client: anthropic.AsyncAnthropic | None = None):
        super().__init__(model=settings.model, max_tokens=settings.max_tokens)
        self._client = client or anthropic.AsyncAnthropic(api_key=settings.api_key)

    async def _complete_impl(self, messages: list[Message], system: str | None = None) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": to_wire_messages(messages),
        }
        if system:
            kwargs["system"] = system
        response = await self._client.messages.create(**kwargs)
        return "".join(block.text for block in response.content if block.type == "text")
