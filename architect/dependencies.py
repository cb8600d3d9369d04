from __future__ import annotations

import httpx
from fastapi import Depends, Header, Request

from .core.config import Settings, get_settings
from .orchestration.orchestrator import AgentOrchestrator
from .services.conversation import ConversationStore, InMemoryConversationStore
from .tools.registry import ToolRegistry, tool_registry

DEFAULT_USER_ID = "anonymous"

_conversation_store_singleton: ConversationStore | None = None
_orchestrator_singleton: AgentOrchestrator | None = None


def get_conversation_store_singleton(settings: Settings) -> ConversationStore:
    global _conversation_store_singleton
    if _conversation_store_singleton is None:
        _conversation_store_singleton = InMemoryConversationStore(default_settings=settings.llm)
    return _conversation_store_singleton


def get_orchestrator_singleton(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    registry: ToolRegistry | None = None,
) -> AgentOrchestrator:
    global _orchestrator_singleton
    if _orchestrator_singleton is None:
        _orchestrator_singleton = AgentOrchestrator(
            store=get_conversation_store_singleton(settings),
            registry=registry or tool_registry,
            settings=settings,
            http_client=http_client,
        )
    return _orchestrator_singleton


def reset_singletons() -> None:
    global _conversation_store_singleton, _orchestrator_singleton
    _conversation_store_singleton = None
    _orchestrator_singleton = None


async def get_app_settings() -> Settings:
    return get_settings()


async def get_tool_registry() -> ToolRegistry:
    return tool_registry


async def get_orchestrator(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> AgentOrchestrator:
    http_client = getattr(request.app.state, "http_client", None)
    return get_orchestrator_singleton(settings, http_client=http_client)


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    value = (x_user_id or "").strip()
    return value or DEFAULT_USER_ID
