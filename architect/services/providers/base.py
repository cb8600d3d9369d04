from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from ...core.config import LLMSettings
from ...tools.base import ToolDefinition
from ..messages import ChatMessage, LLMResponse


class ProviderAdapter(ABC):
    """Marshals requests and responses for one oracle wire format."""

    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings

    @property
    def provider(self) -> str:
        return self.settings.provider

    @property
    @abstractmethod
    def endpoint(self) -> str: ...

    @abstractmethod
    def headers(self) -> dict[str, str]: ...

    @abstractmethod
    def build_body(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    def parse_response(self, payload: Mapping[str, Any]) -> LLMResponse: ...


def tool_parameters(tool: ToolDefinition) -> dict[str, Any]:
    schema = tool.parameters if isinstance(tool.parameters, Mapping) else {}
    if not schema:
        return {"type": "object", "properties": {}}
    return dict(schema)


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode tool-call arguments that may arrive as a JSON string, a mapping or garbage."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return dict(decoded) if isinstance(decoded, Mapping) else {}
    return {}
