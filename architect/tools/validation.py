from __future__ import annotations

import json
from typing import Any, Mapping

from ..core.logging import get_logger
from .base import ToolDefinition, required_fields
from .exceptions import ToolPayloadValidationError

logger = get_logger(name=__name__)


def missing_required_fields(tool: ToolDefinition, payload: Mapping[str, Any]) -> list[str]:
    """Required fields that are absent or null in ``payload``, in schema order."""
    return [field for field in required_fields(tool) if payload.get(field) is None]


class ToolPayloadValidator:
    def __init__(self, *, max_string_length: int = 4096) -> None:
        self._max_string_length = max_string_length

    def validate(self, tool: ToolDefinition, payload: Mapping[str, Any]) -> None:
        missing = missing_required_fields(tool, payload)
        if missing:
            logger.info("tool_payload_missing_fields", tool=tool.name, missing=missing)
            raise ToolPayloadValidationError(
                f"Payload for '{tool.name}' missing required fields: {', '.join(missing)}",
                missing=missing,
            )
        self._guard_payload_shape(tool.name, payload, max_length=self._max_string_length)
        self._ensure_serializable(tool.name, payload)

    def _guard_payload_shape(self, tool: str, value: Any, *, max_length: int, key_path: str = "") -> None:
        if isinstance(value, Mapping):
            for key, item in value.items():
                next_path = f"{key_path}.{key}" if key_path else str(key)
                self._guard_payload_shape(tool, item, max_length=max_length, key_path=next_path)
            return
        if isinstance(value, list):
            for index, item in enumerate(value):
                next_path = f"{key_path}[{index}]" if key_path else f"[{index}]"
                self._guard_payload_shape(tool, item, max_length=max_length, key_path=next_path)
            return
        if isinstance(value, str) and len(value) > max_length:
            raise ToolPayloadValidationError(
                f"Payload field '{key_path or '<root>'}' for '{tool}' exceeds maximum length of {max_length} characters"
            )

    def _ensure_serializable(self, tool: str, payload: Mapping[str, Any]) -> None:
        try:
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
        except (TypeError, ValueError) as exc:
            raise ToolPayloadValidationError(f"Payload for '{tool}' is not JSON-serializable") from exc


__all__ = [
    "ToolPayloadValidator",
    "ToolPayloadValidationError",
    "missing_required_fields",
]
