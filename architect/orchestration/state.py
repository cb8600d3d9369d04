from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import uuid4

from ..services.messages import ChatMessage
from .enums import PlanStatus
from .models import AgentAction, ExecutionPlan
from .telemetry import estimate_message_tokens

__all__ = ["AgentState", "AgentStateManager"]


@dataclass(slots=True)
class AgentState:
    run_id: str
    session_id: str
    user_id: str
    plan: ExecutionPlan | None = None
    iteration: int = 0
    steps_completed: int = 0
    last_tool_signature: str | None = None
    messages: list[ChatMessage] = field(default_factory=list)
    actions: list[AgentAction] = field(default_factory=list)
    is_complete: bool = False


class AgentStateManager:
    """Mutable state of a single turn; owned by one orchestrator run."""

    def __init__(
        self,
        *,
        session_id: str,
        user_id: str,
        run_id: str | None = None,
        messages: Iterable[ChatMessage] | None = None,
    ) -> None:
        self._state = AgentState(
            run_id=run_id or f"run_{uuid4().hex[:12]}",
            session_id=session_id,
            user_id=user_id,
            messages=list(messages or []),
        )

    @property
    def run_id(self) -> str:
        return self._state.run_id

    @property
    def session_id(self) -> str:
        return self._state.session_id

    @property
    def user_id(self) -> str:
        return self._state.user_id

    @property
    def plan(self) -> ExecutionPlan | None:
        return self._state.plan

    def set_plan(self, plan: ExecutionPlan | None) -> None:
        self._state.plan = plan

    @property
    def iteration(self) -> int:
        return self._state.iteration

    def increment_iteration(self) -> int:
        self._state.iteration += 1
        return self._state.iteration

    @property
    def steps_completed(self) -> int:
        return self._state.steps_completed

    def increment_steps_completed(self) -> int:
        self._state.steps_completed += 1
        return self._state.steps_completed

    def set_current_step(self, step_id: str | None) -> None:
        if self._state.plan is not None:
            self._state.plan.current_step_id = step_id

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._state.messages)

    def add_message(self, message: ChatMessage) -> None:
        self._state.messages.append(message)

    def set_system_prompt(self, content: str) -> None:
        """Install ``content`` as the leading system message, replacing any existing one."""
        messages = self._state.messages
        if messages and messages[0].role == "system":
            messages[0] = ChatMessage.system(content)
        else:
            messages.insert(0, ChatMessage.system(content))

    @property
    def actions(self) -> list[AgentAction]:
        return list(self._state.actions)

    def add_action(self, action: AgentAction) -> None:
        self._state.actions.append(action)

    @property
    def last_tool_signature(self) -> str | None:
        return self._state.last_tool_signature

    def set_last_tool_signature(self, signature: str | None) -> None:
        self._state.last_tool_signature = signature

    @property
    def is_complete(self) -> bool:
        return self._state.is_complete

    def mark_complete(self) -> None:
        self._state.is_complete = True
        plan = self._state.plan
        if plan is not None and plan.status not in (PlanStatus.COMPLETED, PlanStatus.FAILED):
            plan.status = PlanStatus.COMPLETED
            plan.completed_at = datetime.now(timezone.utc)

    def trim_to_token_budget(self, budget: int, *, min_messages: int = 3) -> int:
        """Drop the oldest non-system messages until under ``budget`` tokens.

        At least ``min_messages`` non-system messages are kept. Returns the
        number of messages removed.
        """
        removed = 0
        messages = self._state.messages
        while estimate_message_tokens(messages) > budget:
            conversational = [index for index, message in enumerate(messages) if message.role != "system"]
            if len(conversational) <= min_messages:
                break
            del messages[conversational[0]]
            removed += 1
        return removed

    def snapshot(self) -> dict[str, Any]:
        state = self._state
        return {
            "run_id": state.run_id,
            "session_id": state.session_id,
            "user_id": state.user_id,
            "plan": state.plan.model_dump(mode="json") if state.plan is not None else None,
            "iteration": state.iteration,
            "steps_completed": state.steps_completed,
            "last_tool_signature": state.last_tool_signature,
            "message_count": len(state.messages),
            "actions": [action.model_dump(mode="json") for action in state.actions],
            "is_complete": state.is_complete,
        }
