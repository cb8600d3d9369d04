from __future__ import annotations

from typing import Sequence


class ToolError(RuntimeError):
    """Base class for tooling-related failures."""


class ToolNotFoundError(ToolError):
    """Raised when a requested tool cannot be resolved."""


class ToolPayloadValidationError(ValueError):
    """Raised when a tool payload violates schema or structural guards."""

    def __init__(self, message: str, *, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = list(missing)
