from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, Iterator, Tuple

from .base import ToolDefinition
from .exceptions import ToolNotFoundError

__all__ = ["normalize_tool_name", "ToolRegistry", "tool_registry"]


def normalize_tool_name(name: str) -> str:
    """Return the lookup key for a tool name (case and surrounding space insensitive)."""
    if not isinstance(name, str):
        raise TypeError("Tool name must be a string")
    return name.strip().lower()


class ToolRegistry:
    """Name-keyed collection of tool definitions with per-tool circuit breaker state."""

    def __init__(
        self,
        tools: Iterable[ToolDefinition] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry: Dict[str, ToolDefinition] = {}
        self._failure_threshold: int = 5
        self._cooldown_seconds: float = 30.0
        self._failures: Dict[str, int] = {}
        self._open_until: Dict[str, float] = {}
        self._clock = clock
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if not isinstance(tool, ToolDefinition):
            raise TypeError(f"Object {tool!r} does not satisfy the tool contract")
        key = normalize_tool_name(tool.name)
        if not key:
            raise ValueError("Tool name must not be empty")
        self._registry[key] = tool
        self._failures.pop(key, None)
        self._open_until.pop(key, None)

    def unregister(self, name: str) -> None:
        key = normalize_tool_name(name)
        self._registry.pop(key, None)
        self._failures.pop(key, None)
        self._open_until.pop(key, None)

    def clear(self) -> None:
        self._registry.clear()
        self._failures.clear()
        self._open_until.clear()

    def get(self, name: str) -> ToolDefinition | None:
        return self._registry.get(normalize_tool_name(name))

    def require(self, name: str) -> ToolDefinition:
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{name}' is not registered")
        return tool

    def list(self) -> list[str]:
        return sorted(tool.name for tool in self._registry.values())

    def definitions(self) -> list[ToolDefinition]:
        return [self._registry[key] for key in sorted(self._registry)]

    def items(self) -> Iterator[Tuple[str, ToolDefinition]]:
        for tool in self._registry.values():
            yield tool.name, tool

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_tool_name(name) in self._registry

    def __len__(self) -> int:
        return len(self._registry)

    def configure_circuit(self, *, threshold: int, reset_seconds: float) -> None:
        self._failure_threshold = max(1, int(threshold))
        self._cooldown_seconds = max(0.0, float(reset_seconds))

    def record_failure(self, name: str) -> bool:
        """Count a failure; returns True when this failure opened the circuit."""
        key = normalize_tool_name(name)
        if key not in self._registry:
            return False
        count = self._failures.get(key, 0) + 1
        self._failures[key] = count
        if count >= self._failure_threshold and self._cooldown_seconds > 0:
            self._open_until[key] = self._clock() + self._cooldown_seconds
            return True
        return False

    def record_success(self, name: str) -> None:
        key = normalize_tool_name(name)
        self._failures.pop(key, None)
        self._open_until.pop(key, None)

    def is_circuit_open(self, name: str) -> bool:
        key = normalize_tool_name(name)
        expires_at = self._open_until.get(key)
        if expires_at is None:
            return False
        if self._clock() >= expires_at:
            self._open_until.pop(key, None)
            self._failures.pop(key, None)
            return False
        return True

    def failure_count(self, name: str) -> int:
        return self._failures.get(normalize_tool_name(name), 0)


tool_registry = ToolRegistry()
