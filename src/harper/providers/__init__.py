"""
Harper AI Providers

``create_provider`` builds the provider named in the configuration and
raises ConfigError when it cannot.
"""

from __future__ import annotations

from harper.config import ProviderSettings
from harper.exceptions import ConfigError
from harper.providers.base import ChatProvider, to_wire_messages
from harper.providers.claude import ClaudeProvider


def create_provider(settings: ProviderSettings) -> ChatProvider:
    if not settings.api_key:
        raise ConfigError(f"No API key configured for provider '{settings.provider}'")
    if settings.provider == "anthropic":
        return ClaudeProvider(settings)
    raise ConfigError(f"Unknown provider '{settings.provider}' (supported: anthropic)")


__all__ = ["ChatProvider", "ClaudeProvider", "create_provider", "to_wire_messages"]
