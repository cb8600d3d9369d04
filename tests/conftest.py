from __future__ import annotations

import asyncio
from collections import deque

import pytest

from architect.core.config import LLMSettings, Settings
from architect.services.conversation import InMemoryConversationStore
from architect.tools.base import FunctionTool
from architect.tools.registry import ToolRegistry

from tests.helpers.stubs import FakeClock, ScriptedOracle


@pytest.fixture
def noop_sleep(monkeypatch):
    calls = deque()

    async def _sleep(duration: float):
        calls.append(duration)

    monkeypatch.setattr(asyncio, "sleep", _sleep)
    return calls


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        llm=LLMSettings(provider="openai", api_key="sk-test", model="gpt-test"),
    )


@pytest.fixture
def store(settings: Settings) -> InMemoryConversationStore:
    return InMemoryConversationStore(default_settings=settings.llm)


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def task_calls() -> list[dict]:
    return []


@pytest.fixture
def registry(task_calls: list[dict]) -> ToolRegistry:
    def get_tasks(args: dict) -> dict:
        task_calls.append({"tool": "get_tasks", **args})
        return {"tasks": [{"id": 5, "title": "Write report", "status": args.get("status", "to_do")}]}

    def delete_task(args: dict) -> dict:
        task_calls.append({"tool": "delete_task", **args})
        return {"deleted": args["task_id"]}

    registry = ToolRegistry()
    registry.register(
        FunctionTool(
            name="get_tasks",
            description="List the user's tasks",
            handler=get_tasks,
            parameters={"type": "object", "properties": {"status": {"type": "string"}}},
        )
    )
    registry.register(
        FunctionTool(
            name="delete_task",
            description="Delete a task by id",
            handler=delete_task,
            parameters={
                "type": "object",
                "properties": {"task_id": {"type": "integer"}},
                "required": ["task_id"],
            },
        )
    )
    return registry
