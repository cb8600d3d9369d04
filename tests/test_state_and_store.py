from __future__ import annotations

import pytest

from architect.core.config import LLMSettings, Settings, get_settings
from architect.orchestration.enums import PlanStatus
from architect.orchestration.models import ExecutionPlan, PlanStep
from architect.orchestration.state import AgentStateManager
from architect.services.conversation import InMemoryConversationStore
from architect.services.messages import ChatMessage


def test_trim_keeps_system_prompt_and_minimum_history() -> None:
    state = AgentStateManager(session_id="s", user_id="u")
    state.set_system_prompt("s" * 40)
    for index in range(6):
        state.add_message(ChatMessage.user(f"{index}" * 40))

    removed = state.trim_to_token_budget(35, min_messages=3)

    assert removed == 3
    messages = state.messages
    assert messages[0].role == "system"
    assert [message.content[0] for message in messages[1:]] == ["3", "4", "5"]


def test_trim_is_a_no_op_under_budget() -> None:
    state = AgentStateManager(session_id="s", user_id="u", messages=[ChatMessage.user("hi")])

    assert state.trim_to_token_budget(100) == 0
    assert len(state.messages) == 1


def test_system_prompt_is_replaced_not_stacked() -> None:
    state = AgentStateManager(session_id="s", user_id="u", messages=[ChatMessage.user("hi")])

    state.set_system_prompt("first")
    state.set_system_prompt("second")

    assert [(message.role, message.content) for message in state.messages] == [
        ("system", "second"),
        ("user", "hi"),
    ]


def test_mark_complete_closes_an_open_plan() -> None:
    state = AgentStateManager(session_id="s", user_id="u")
    state.set_plan(ExecutionPlan(goal="g", steps=[PlanStep(description="d")]))

    state.mark_complete()

    assert state.is_complete is True
    assert state.plan is not None and state.plan.status is PlanStatus.COMPLETED
    assert state.snapshot()["is_complete"] is True


@pytest.mark.asyncio
async def test_store_scopes_history_by_user_and_session() -> None:
    store = InMemoryConversationStore()
    await store.add_message("s1", "alice", ChatMessage.user("one"))
    await store.add_message("s1", "alice", ChatMessage.assistant("two"), {"run_id": "run_1"})
    await store.add_message("s1", "bob", ChatMessage.user("other"))

    history = await store.get_messages("s1", "alice")
    latest = await store.get_messages("s1", "alice", limit=1)

    assert [message.content for message in history] == ["one", "two"]
    assert [message.content for message in latest] == ["two"]
    assert store.records("s1", "alice")[1].metadata == {"run_id": "run_1"}
    assert await store.get_messages("s2", "alice") == []


@pytest.mark.asyncio
async def test_store_settings_fall_back_to_defaults() -> None:
    defaults = LLMSettings(provider="ollama", model="llama3")
    store = InMemoryConversationStore(default_settings=defaults)

    assert await store.get_settings("alice") == defaults

    custom = LLMSettings(provider="openai", api_key="sk", model="gpt")
    await store.update_settings("alice", custom)

    assert await store.get_settings("alice") == custom
    assert await store.get_settings("bob") == defaults


def test_llm_settings_require_a_key_except_for_ollama() -> None:
    assert LLMSettings(provider="ollama").is_configured is True
    assert LLMSettings(provider="anthropic").is_configured is False
    assert LLMSettings(provider="anthropic", api_key="sk-ant").is_configured is True


def test_nested_environment_variables_override_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUNTIME__MAX_STEPS", "3")
    monkeypatch.setenv("LLM__PROVIDER", "openrouter")

    settings = Settings()

    assert settings.runtime.max_steps == 3
    assert settings.llm.provider == "openrouter"


def test_get_settings_with_overrides_bypasses_cache() -> None:
    settings = get_settings({"environment": "test", "app_name": "Scratch"})

    assert settings.app_name == "Scratch"
    assert get_settings() is get_settings()
