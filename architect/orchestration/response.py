from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from .enums import ActionStatus, ActionType, StepStatus
from .models import AgentAction, ExecutionPlan, NonEmptyMessage
from .telemetry import AgentTelemetry, TelemetryEvent

__all__ = ["ExecutionResult", "ResponseBuilder", "ensure_non_empty_message", "to_past_tense"]

GENERIC_SUCCESS_MESSAGE = "I've processed your request. Is there anything specific you'd like me to help with?"
GENERIC_FAILURE_MESSAGE = (
    "I wasn't able to complete your request. Could you provide more details or try rephrasing?"
)

_PAST_TENSE = (
    ("create ", "created "),
    ("add ", "added "),
    ("update ", "updated "),
    ("delete ", "deleted "),
    ("remove ", "removed "),
    ("set ", "set "),
    ("get ", "retrieved "),
    ("fetch ", "fetched "),
    ("load ", "loaded "),
    ("save ", "saved "),
    ("list ", "listed "),
    ("log ", "logged "),
)
_ALREADY_PAST = ("completed ", "finished ", "done ")
_OUTPUT_TYPES = (ActionType.READ, ActionType.WRITE)


@dataclass(slots=True)
class ExecutionResult:
    success: bool
    message: NonEmptyMessage
    actions: list[AgentAction] = field(default_factory=list)
    plan: ExecutionPlan | None = None
    telemetry: AgentTelemetry | None = None
    events: list[TelemetryEvent] = field(default_factory=list)

    @property
    def pending_actions(self) -> list[AgentAction]:
        return [action for action in self.actions if action.status is ActionStatus.PENDING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": str(self.message),
            "actions": [action.model_dump(mode="json") for action in self.actions],
            "plan": self.plan.model_dump(mode="json") if self.plan is not None else None,
            "telemetry": self.telemetry.to_dict() if self.telemetry is not None else None,
            "events": [event.model_dump(mode="json") for event in self.events],
        }


def to_past_tense(description: str) -> str:
    lowered = description.lower()
    if lowered.startswith(_ALREADY_PAST):
        return description
    for present, past in _PAST_TENSE:
        if lowered.startswith(present):
            return past + description[len(present) :]
    return description


def _describe(action: AgentAction) -> str:
    return action.description.strip() or f"{action.type.value} {action.entity}"


def _summarize_actions(completed: Sequence[AgentAction], pending: Sequence[AgentAction]) -> str:
    if not pending:
        if len(completed) == 1:
            return f"I {to_past_tense(_describe(completed[0]))}."
        lines = "\n".join(f"• {to_past_tense(_describe(action))}" for action in completed)
        return f"I've completed the following actions:\n{lines}"
    if len(completed) == 1:
        done = f"I {to_past_tense(_describe(completed[0]))}"
    else:
        done = f"I've completed {len(completed)} actions"
    if len(pending) == 1:
        waiting = f"need your confirmation to {_describe(pending[0])}"
    else:
        waiting = f"need your confirmation for {len(pending)} more actions"
    return f"{done} and {waiting}."


def _derive_message(
    actions: Sequence[AgentAction],
    plan: ExecutionPlan | None,
    success: bool,
) -> str:
    completed = [action for action in actions if action.status is ActionStatus.EXECUTED]
    pending = [action for action in actions if action.status is ActionStatus.PENDING]
    failed = [action for action in actions if action.status is ActionStatus.FAILED]

    if completed:
        return _summarize_actions(completed, pending)
    if pending:
        if len(pending) == 1:
            return f"I need your confirmation to {_describe(pending[0])}."
        return f"I need your confirmation for {len(pending)} actions."

    if plan is not None and plan.steps:
        done_steps = sum(1 for step in plan.steps if step.status is StepStatus.COMPLETED)
        if done_steps:
            noun = "step" if done_steps == 1 else "steps"
            tail = "and finished the plan." if done_steps == len(plan.steps) else f"out of {len(plan.steps)} in my plan."
            return f"I've completed {done_steps} {noun} {tail}"
        return f'I\'m working on your request: "{plan.goal}".'

    if not success and failed:
        if len(failed) == 1:
            detail = f'The action "{_describe(failed[0])}" failed.'
        else:
            detail = f"{len(failed)} actions failed."
        return f"I encountered some issues while trying to help you. {detail}"

    return GENERIC_SUCCESS_MESSAGE if success else GENERIC_FAILURE_MESSAGE


def ensure_non_empty_message(
    base_message: str | None,
    actions: Sequence[AgentAction],
    plan: ExecutionPlan | None,
    success: bool,
) -> NonEmptyMessage:
    """Total function from turn outcome to a message the user can read."""
    if base_message and base_message.strip():
        return NonEmptyMessage(base_message)
    return NonEmptyMessage(_derive_message(actions, plan, success))


class ResponseBuilder:
    """Single place where turn outcomes become ``ExecutionResult`` objects."""

    def build_execution_result(
        self,
        *,
        success: bool,
        base_message: str | None,
        actions: Sequence[AgentAction],
        plan: ExecutionPlan | None = None,
        telemetry: AgentTelemetry | None = None,
        events: Sequence[TelemetryEvent] = (),
    ) -> ExecutionResult:
        message = ensure_non_empty_message(base_message, actions, plan, success)
        return ExecutionResult(
            success=success,
            message=message,
            actions=[action for action in actions if action.type in _OUTPUT_TYPES],
            plan=plan,
            telemetry=telemetry,
            events=list(events),
        )

    @staticmethod
    def thinking_action(thought: str) -> AgentAction:
        return AgentAction(
            type=ActionType.THINK,
            entity="agent",
            description=thought,
            status=ActionStatus.EXECUTED,
            data={"thought": thought},
        )

    @staticmethod
    def error_action(error: str, **context: Any) -> AgentAction:
        return AgentAction(
            type=ActionType.ERROR,
            entity="agent",
            description=error,
            status=ActionStatus.FAILED,
            data={"error": error, **context},
        )

    @staticmethod
    def plan_action(plan: ExecutionPlan | None) -> AgentAction:
        if plan is None:
            return AgentAction(
                type=ActionType.PLAN,
                entity="agent",
                description="No active plan",
                data={"plan": None},
            )
        completed = sum(1 for step in plan.steps if step.status is StepStatus.COMPLETED)
        return AgentAction(
            type=ActionType.PLAN,
            entity="agent",
            description=f"Plan: {plan.goal} ({completed}/{len(plan.steps)} steps complete)",
            data={
                "plan_id": plan.id,
                "goal": plan.goal,
                "total_steps": len(plan.steps),
                "completed_steps": completed,
                "steps": [
                    {"id": step.id, "description": step.description, "status": step.status.value}
                    for step in plan.steps
                ],
            },
        )
