from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol, runtime_checkable

from ..core.config import LLMSettings
from .messages import ChatMessage

__all__ = ["ConversationStore", "InMemoryConversationStore", "StoredMessage"]


@dataclass(slots=True)
class StoredMessage:
    message: ChatMessage
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class ConversationStore(Protocol):
    """Persistence collaborator for history and per-user oracle settings."""

    async def get_messages(self, session_id: str, user_id: str, limit: int | None = None) -> list[ChatMessage]: ...

    async def add_message(
        self,
        session_id: str,
        user_id: str,
        message: ChatMessage,
        metadata: Mapping[str, Any] | None = None,
    ) -> None: ...

    async def get_settings(self, user_id: str) -> LLMSettings | None: ...

    async def update_settings(self, user_id: str, settings: LLMSettings) -> None: ...


class InMemoryConversationStore:
    """Process-local store used by default and in tests."""

    def __init__(self, *, default_settings: LLMSettings | None = None) -> None:
        self._messages: dict[tuple[str, str], list[StoredMessage]] = {}
        self._settings: dict[str, LLMSettings] = {}
        self._default_settings = default_settings
        self._lock = asyncio.Lock()

    async def get_messages(self, session_id: str, user_id: str, limit: int | None = None) -> list[ChatMessage]:
        async with self._lock:
            records = list(self._messages.get((user_id, session_id), []))
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return [record.message for record in records]

    async def add_message(
        self,
        session_id: str,
        user_id: str,
        message: ChatMessage,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            self._messages.setdefault((user_id, session_id), []).append(
                StoredMessage(message=message, metadata=dict(metadata or {}))
            )

    async def get_settings(self, user_id: str) -> LLMSettings | None:
        async with self._lock:
            return self._settings.get(user_id, self._default_settings)

    async def update_settings(self, user_id: str, settings: LLMSettings) -> None:
        async with self._lock:
            self._settings[user_id] = settings

    def records(self, session_id: str, user_id: str) -> list[StoredMessage]:
        return list(self._messages.get((user_id, session_id), []))
