from __future__ import annotations

import json
from collections import deque
from typing import Any, Iterable, Sequence

from architect.core.config import AgentRuntimeSettings, LLMSettings
from architect.services.messages import ChatMessage, LLMResponse
from architect.tools.base import ToolCall


class FakeClock:
    """Manually advanced monotonic clock shared by caches, guardrails and telemetry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def tool_reply(*calls: tuple[str, dict[str, Any]], content: str = "") -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[ToolCall(name=name, parameters=dict(parameters)) for name, parameters in calls],
    )


def plan_reply(goal: str, steps: Iterable[dict[str, Any]]) -> LLMResponse:
    return LLMResponse(content=json.dumps({"goal": goal, "steps": list(steps)}))


class ScriptedOracle:
    """Stand-in for ``LLMClient`` replaying queued replies in order.

    Queued items may be ``LLMResponse`` objects, plain strings or exceptions
    to raise. Once the script runs out ``default`` is returned.
    """

    def __init__(self, replies: Iterable[Any] = (), *, default: Any = "") -> None:
        self.replies: deque[Any] = deque(replies)
        self.default = default
        self.calls: list[dict[str, Any]] = []
        self.hooks: list[Any] = []
        self.settings: LLMSettings | None = None

    def queue(self, *replies: Any) -> "ScriptedOracle":
        self.replies.extend(replies)
        return self

    def factory(self, settings: LLMSettings, runtime: AgentRuntimeSettings, hooks: Sequence[Any]) -> "ScriptedOracle":
        self.settings = settings
        self.hooks = list(hooks)
        return self

    async def call(self, messages: Sequence[ChatMessage], tools: Sequence[Any] | None = None) -> LLMResponse:
        self.calls.append({"messages": list(messages), "tools": [tool.name for tool in tools or ()]})
        reply = self.replies.popleft() if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(content=str(reply))

    @property
    def tool_calls_made(self) -> int:
        return sum(1 for call in self.calls if call["tools"])
