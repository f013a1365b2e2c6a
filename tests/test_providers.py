"""Tests for the Harper provider layer.

Covers:
- Wire message conversion
- Retry and ProviderError in the base class
- ClaudeProvider request building and text extraction
- Provider factory
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from harper.config import ProviderSettings
from harper.core.models import Message
from harper.exceptions import ConfigError, ProviderError
from harper.providers import ChatProvider, ClaudeProvider, create_provider, to_wire_messages

# ─── Helpers ───────────────────────────────────────────────


class FlakyProvider(ChatProvider):
    def __init__(self, failures: int, max_retries: int = 3):
        super().__init__(model="flaky", max_retries=max_retries, retry_base_delay=0)
        self.failures = failures
        self.attempts = 0

    async def _complete_impl(self, messages, system=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("network down")
        return "ok"


def _block(type_: str, text: str = ""):
    return SimpleNamespace(type=type_, text=text)


def _client(*blocks):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=list(blocks)))
    return client


# ─── Wire messages ─────────────────────────────────────────


class TestToWireMessages:
    def test_roles_kept(self):
        wire = to_wire_messages([Message(role="user", content="hi"), Message(role="assistant", content="hello")])
        assert wire == [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]

    def test_system_dropped(self):
        wire = to_wire_messages([Message(role="system", content="rules"), Message(role="user", content="hi")])
        assert wire == [{"role": "user", "content": "hi"}]

    def test_consecutive_roles_merged(self):
        wire = to_wire_messages([
            Message(role="user", content="list files"),
            Message(role="user", content="Tool results:\n..."),
        ])
        assert wire == [{"role": "user", "content": "list files\n\nTool results:\n..."}]


# ─── Retry ─────────────────────────────────────────────────


class TestRetry:
    @pytest.mark.asyncio
    async def test_recovers(self):
        provider = FlakyProvider(failures=2)
        assert await provider.complete([Message(role="user", content="hi")]) == "ok"
        assert provider.attempts == 3

    @pytest.mark.asyncio
    async def test_exhausted(self):
        provider = FlakyProvider(failures=5, max_retries=2)
        with pytest.raises(ProviderError, match="failed after 2 attempts: network down") as exc_info:
            await provider.complete([])
        assert exc_info.value.provider_name == "FlakyProvider"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert provider.attempts == 2


# ─── ClaudeProvider ────────────────────────────────────────


class TestClaudeProvider:
    @pytest.mark.asyncio
    async def test_joins_text_blocks(self):
        client = _client(_block("text", "Hello "), _block("tool_use"), _block("text", "world"))
        provider = ClaudeProvider(ProviderSettings(api_key="k"), client=client)
        assert await provider.complete([Message(role="user", content="hi")]) == "Hello world"

    @pytest.mark.asyncio
    async def test_request_shape(self):
        client = _client(_block("text", "ok"))
        settings = ProviderSettings(api_key="k", model="claude-test", max_tokens=512)
        provider = ClaudeProvider(settings, client=client)
        await provider.complete([Message(role="user", content="hi")], system="be careful")

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 512
        assert kwargs["system"] == "be careful"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_no_system(self):
        client = _client(_block("text", "ok"))
        await ClaudeProvider(ProviderSettings(api_key="k"), client=client).complete([])
        assert "system" not in client.messages.create.call_args.kwargs


# ─── Factory ───────────────────────────────────────────────


class TestCreateProvider:
    def test_anthropic(self):
        provider = create_provider(ProviderSettings(api_key="sk-test"))
        assert isinstance(provider, ClaudeProvider)
        assert provider.model == ProviderSettings().model

    def test_missing_key(self):
        with pytest.raises(ConfigError, match="No API key"):
            create_provider(ProviderSettings())

    def test_unknown_provider(self):
        with pytest.raises(ConfigError, match="Unknown provider 'acme'"):
            create_provider(ProviderSettings(provider="acme", api_key="k"))
