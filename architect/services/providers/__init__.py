from __future__ import annotations

from ...core.config import LLMSettings
from .anthropic import AnthropicAdapter
from .base import ProviderAdapter
from .openai import OpenAICompatibleAdapter


def build_adapter(settings: LLMSettings) -> ProviderAdapter:
    """Select the wire-format adapter for the configured provider."""
    if settings.provider == "anthropic":
        return AnthropicAdapter(settings)
    return OpenAICompatibleAdapter(settings)


__all__ = ["AnthropicAdapter", "OpenAICompatibleAdapter", "ProviderAdapter", "build_adapter"]
