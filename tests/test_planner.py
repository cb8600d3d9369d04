from __future__ import annotations

import json

import pytest

from architect.orchestration.enums import PlanStatus
from architect.orchestration.planner import (
    FALLBACK_CONVERSATIONAL_GOAL,
    PlanGenerator,
    create_quick_plan,
    is_simple_conversational_query,
)
from architect.services.llm import LLMError
from architect.tools.base import FunctionTool

TOOLS = [
    FunctionTool(
        name="get_tasks",
        description="List tasks",
        handler=lambda args: [],
        parameters={"type": "object", "properties": {"status": {"type": "string"}}},
    )
]


def _oracle(reply):
    seen: list = []

    async def call(messages):
        seen.append(messages)
        if isinstance(reply, Exception):
            raise reply
        return reply

    call.seen = seen  # type: ignore[attr-defined]
    return call


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("hello", True),
        ("Thanks so much", True),
        ("ok", True),
        ("list my tasks", False),
        ("delete task 5", False),
        ("Can you summarize my week?", False),
        ("Shipping the release tonight", True),
        ("Is the deployment pipeline healthy right now?", False),
    ],
)
def test_simple_conversational_detection(text: str, expected: bool) -> None:
    assert is_simple_conversational_query(text) is expected


def test_action_words_match_whole_words_only() -> None:
    assert is_simple_conversational_query("hey, shown up yet") is True


@pytest.mark.asyncio
async def test_generate_plan_parses_fenced_reply() -> None:
    payload = {
        "goal": "Show open tasks",
        "steps": [
            {"description": "Fetch open tasks", "toolName": "get_tasks", "parameters": {"status": "to_do"}},
            {"description": "Summarize them", "dependsOn": [1]},
        ],
    }
    oracle = _oracle(f"Here is the plan:\n```json\n{json.dumps(payload)}\n```")

    plan = await PlanGenerator().generate_plan("list my open tasks", TOOLS, oracle)

    assert plan.goal == "Show open tasks"
    assert plan.status is PlanStatus.DRAFT
    assert [step.tool_name for step in plan.steps] == ["get_tasks", None]
    assert plan.steps[0].parameters == {"status": "to_do"}
    assert plan.steps[1].dependency_ids == [plan.steps[0].id]
    assert "get_tasks" in oracle.seen[0][0].content


@pytest.mark.asyncio
async def test_generate_plan_caps_step_count() -> None:
    steps = [{"description": f"step {index}"} for index in range(12)]
    oracle = _oracle(json.dumps({"goal": "many", "steps": steps}))

    plan = await PlanGenerator(max_steps=3).generate_plan("do many things", TOOLS, oracle)

    assert len(plan.steps) == 3


@pytest.mark.asyncio
async def test_malformed_reply_falls_back() -> None:
    request = "I need a full list of every task I created last week with status"
    plan = await PlanGenerator().generate_plan(request, TOOLS, _oracle("not json at all"))

    assert plan.goal == f"Handle: {request}"
    assert len(plan.steps) == 1
    assert plan.steps[0].description == f'Process the user\'s request: "{request}"'


@pytest.mark.asyncio
async def test_oracle_failure_propagates() -> None:
    error = LLMError("Rate limit exceeded. Please try again later.", code="llm_request_failed", status=429)

    with pytest.raises(LLMError):
        await PlanGenerator().generate_plan("list tasks", TOOLS, _oracle(error))


def test_fallback_for_short_chat_has_no_steps() -> None:
    plan = PlanGenerator().create_fallback_plan("good morning")

    assert plan.goal == FALLBACK_CONVERSATIONAL_GOAL
    assert plan.steps == []


def test_fallback_truncates_long_goals() -> None:
    request = "show " + "x" * 200

    plan = PlanGenerator().create_fallback_plan(request)

    assert plan.goal == f"Handle: {request[:100]}..."


def test_create_quick_plan_resolves_step_numbers() -> None:
    plan = create_quick_plan(
        "Clean up",
        [
            {"description": "Find done tasks", "tool_name": "get_tasks", "parameters": {"status": "done"}},
            {"description": "Archive them", "dependsOn": ["1"]},
        ],
    )

    assert plan.steps[1].dependency_ids == [plan.steps[0].id]
    assert plan.steps[1].tool_name is None
