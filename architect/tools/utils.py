"""Canonical serialization and classification helpers for tool calls."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Sequence

from ..core.config import DEFAULT_WRITE_PREFIXES
from .base import ToolCall

__all__ = [
    "CIRCULAR_MARKER",
    "create_tool_cache_key",
    "dedupe_tool_calls",
    "is_write_tool",
    "normalize_tool_params",
    "stable_stringify",
    "tool_call_signature",
]

CIRCULAR_MARKER = "[Circular]"


def _canonicalize(value: Any, ancestors: tuple[int, ...]) -> Any:
    if isinstance(value, Mapping):
        if id(value) in ancestors:
            return CIRCULAR_MARKER
        nested = ancestors + (id(value),)
        return {str(key): _canonicalize(value[key], nested) for key in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        if id(value) in ancestors:
            return CIRCULAR_MARKER
        nested = ancestors + (id(value),)
        return [_canonicalize(item, nested) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def stable_stringify(value: Any) -> str:
    """JSON text that is identical for structurally equal values regardless of key order."""
    return json.dumps(_canonicalize(value, ()), separators=(",", ":"), ensure_ascii=False)


def normalize_tool_params(params: Any) -> dict[str, Any]:
    if isinstance(params, Mapping):
        return dict(params)
    return {}


def is_write_tool(name: str, prefixes: Sequence[str] = DEFAULT_WRITE_PREFIXES) -> bool:
    lowered = name.strip().lower()
    return any(lowered.startswith(prefix.lower()) for prefix in prefixes)


def create_tool_cache_key(user_id: str, tool_name: str, params: Any) -> str:
    return f"{user_id}:{tool_name}:{stable_stringify(normalize_tool_params(params))}"


def dedupe_tool_calls(calls: Iterable[ToolCall]) -> list[ToolCall]:
    """Drop calls identical to an earlier one (same name, same canonical params)."""
    seen: set[str] = set()
    unique: list[ToolCall] = []
    for call in calls:
        key = f"{call.name}:{stable_stringify(normalize_tool_params(call.parameters))}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(call)
    return unique


def tool_call_signature(calls: Iterable[ToolCall]) -> str:
    """Order-independent fingerprint of a batch of requested calls, used for loop detection."""
    entries = sorted(
        stable_stringify({"name": call.name, "parameters": normalize_tool_params(call.parameters)})
        for call in calls
    )
    return stable_stringify(entries)
