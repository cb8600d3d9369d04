from __future__ import annotations

import json
import re
from typing import Any

__all__ = ["ResponseParseError", "extract_json_object"]

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class ResponseParseError(ValueError):
    """Raised when an oracle reply does not contain the expected JSON object."""


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull a JSON object out of free text: whole reply, fenced block, or outermost braces."""
    trimmed = (text or "").strip()
    if not trimmed:
        raise ResponseParseError("Response was empty")
    candidates = [trimmed]
    fenced = _FENCE_PATTERN.search(trimmed)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start != -1 and end > start:
        candidates.append(trimmed[start : end + 1])
    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload
    raise ResponseParseError("Response did not contain a JSON object")
