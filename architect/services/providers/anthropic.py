from __future__ import annotations

from typing import Any, Mapping, Sequence

from ...tools.base import ToolCall, ToolDefinition
from ..messages import ChatMessage, LLMResponse
from .base import ProviderAdapter, parse_arguments, tool_parameters

ANTHROPIC_ENDPOINT = "https://api.anthropic.com/v1/messages"


class AnthropicAdapter(ProviderAdapter):
    """Messages API: separate system field, tool traffic as typed content blocks."""

    @property
    def endpoint(self) -> str:
        return self.settings.base_url or ANTHROPIC_ENDPOINT

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.settings.api_key or "",
            "anthropic-version": self.settings.anthropic_version,
        }

    def build_body(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> dict[str, Any]:
        system_parts = [message.content for message in messages if message.role == "system" and message.content]
        body: dict[str, Any] = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": self._convert_messages(messages),
        }
        if self.settings.top_p is not None:
            body["top_p"] = self.settings.top_p
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if tools:
            body["tools"] = [
                {"name": tool.name, "description": tool.description, "input_schema": tool_parameters(tool)}
                for tool in tools
            ]
        return body

    def _convert_messages(self, messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                continue
            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id or "",
                    "content": message.content,
                }
                previous = converted[-1] if converted else None
                # consecutive tool results share one user turn
                if previous and previous["role"] == "user" and isinstance(previous["content"], list):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
                continue
            if message.role == "assistant" and message.tool_calls:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.parameters})
                converted.append({"role": "assistant", "content": blocks})
                continue
            converted.append({"role": message.role, "content": message.content})
        return converted

    def parse_response(self, payload: Mapping[str, Any]) -> LLMResponse:
        texts: list[str] = []
        calls: list[ToolCall] = []
        blocks = payload.get("content")
        for block in blocks if isinstance(blocks, list) else []:
            if not isinstance(block, Mapping):
                continue
            if block.get("type") == "text" and isinstance(block.get("text"), str):
                texts.append(block["text"])
            elif block.get("type") == "tool_use" and block.get("name"):
                call = ToolCall(name=str(block["name"]), parameters=parse_arguments(block.get("input")))
                if block.get("id"):
                    call.id = str(block["id"])
                calls.append(call)
        return LLMResponse(content="".join(texts), tool_calls=calls, raw=dict(payload))
