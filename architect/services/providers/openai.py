from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from ...tools.base import ToolCall, ToolDefinition
from ..messages import ChatMessage, LLMResponse
from .base import ProviderAdapter, parse_arguments, tool_parameters

OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"
OPENROUTER_ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"
OLLAMA_BASE_URL = "http://localhost:11434"
ZAI_ENDPOINT = "https://api.z.ai/api/coding/paas/v4/chat/completions"


class OpenAICompatibleAdapter(ProviderAdapter):
    """Chat-completions format shared by OpenAI, OpenRouter, Ollama and Z.ai."""

    @property
    def endpoint(self) -> str:
        provider = self.settings.provider
        base_url = self.settings.base_url
        if provider == "openrouter":
            return base_url or OPENROUTER_ENDPOINT
        if provider == "ollama":
            return f"{(base_url or OLLAMA_BASE_URL).rstrip('/')}/v1/chat/completions"
        if provider == "zai":
            return base_url or ZAI_ENDPOINT
        return base_url or OPENAI_ENDPOINT

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        if self.settings.provider == "openrouter":
            headers["HTTP-Referer"] = self.settings.referer
            headers["X-Title"] = self.settings.title
        return headers

    def build_body(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.settings.model,
            "messages": [self._convert_message(message) for message in messages],
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }
        if self.settings.top_p is not None:
            body["top_p"] = self.settings.top_p
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool_parameters(tool),
                    },
                }
                for tool in tools
            ]
            body["tool_choice"] = "auto"
        return body

    @staticmethod
    def _convert_message(message: ChatMessage) -> dict[str, Any]:
        if message.role == "tool":
            return {"role": "tool", "tool_call_id": message.tool_call_id or "", "content": message.content}
        if message.role == "assistant" and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.parameters)},
                    }
                    for call in message.tool_calls
                ],
            }
        return {"role": message.role, "content": message.content}

    def parse_response(self, payload: Mapping[str, Any]) -> LLMResponse:
        choices = payload.get("choices")
        first = choices[0] if isinstance(choices, list) and choices else {}
        message = first.get("message") if isinstance(first, Mapping) else None
        if not isinstance(message, Mapping):
            return LLMResponse(raw=dict(payload))
        content = message.get("content")
        calls: list[ToolCall] = []
        raw_calls = message.get("tool_calls")
        for raw in raw_calls if isinstance(raw_calls, list) else []:
            function = raw.get("function") if isinstance(raw, Mapping) else None
            if not isinstance(function, Mapping) or not function.get("name"):
                continue
            call = ToolCall(name=str(function["name"]), parameters=parse_arguments(function.get("arguments")))
            if raw.get("id"):
                call.id = str(raw["id"])
            calls.append(call)
        return LLMResponse(content=content if isinstance(content, str) else "", tool_calls=calls, raw=dict(payload))
