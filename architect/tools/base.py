from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

__all__ = [
    "FunctionTool",
    "ToolCall",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolHandler",
    "required_fields",
    "tool_schema",
]


@runtime_checkable
class ToolDefinition(Protocol):
    """Shape every capability must satisfy to be callable by the agent.

    ``execute`` may return a plain value or an awaitable; raising signals failure.
    """

    name: str
    description: str
    parameters: Mapping[str, Any]

    def execute(self, args: dict[str, Any]) -> Any: ...


ToolHandler = Callable[[dict[str, Any]], Any]


@dataclass(slots=True)
class FunctionTool:
    """Adapts a plain (sync or async) callable to the tool contract."""

    name: str
    description: str
    handler: ToolHandler
    parameters: Mapping[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def execute(self, args: dict[str, Any]) -> Any:
        return self.handler(args)


@dataclass(slots=True)
class ToolCall:
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "parameters": dict(self.parameters)}


@dataclass(slots=True)
class ToolExecutionResult:
    tool_name: str
    success: bool
    result: Any = None
    error: str | None = None
    duration_ms: float = 0.0
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "tool_name": self.tool_name,
            "success": self.success,
            "result": self.result,
            "duration_ms": round(self.duration_ms, 3),
            "cached": self.cached,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


def required_fields(tool: ToolDefinition) -> list[str]:
    schema = getattr(tool, "parameters", None)
    if not isinstance(schema, Mapping):
        return []
    required = schema.get("required")
    if not isinstance(required, (list, tuple)):
        return []
    return [str(item) for item in required]


def tool_schema(tool: ToolDefinition) -> dict[str, Any]:
    """Serializable description of a tool used by prompts and the HTTP surface."""
    parameters = tool.parameters if isinstance(tool.parameters, Mapping) else {}
    return {
        "name": tool.name,
        "description": tool.description,
        "parameters": dict(parameters),
    }
