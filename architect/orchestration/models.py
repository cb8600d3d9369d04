from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from .enums import ActionStatus, ActionType, NextAction, PlanStatus, ProgressEventType, StepStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


class PlanStep(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("step"))
    description: str = Field(min_length=1)
    tool_name: str | None = None
    parameters: dict[str, Any] | None = None
    reasoning: str | None = None
    status: StepStatus = StepStatus.PENDING
    dependency_ids: list[str] = Field(default_factory=list)
    result: Any = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ExecutionPlan(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("plan"))
    goal: str = Field(min_length=1)
    steps: list[PlanStep] = Field(default_factory=list)
    status: PlanStatus = PlanStatus.DRAFT
    current_step_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    def step(self, step_id: str) -> PlanStep | None:
        return next((step for step in self.steps if step.id == step_id), None)


class AgentAction(BaseModel):
    """Record of something the agent did or wants to do.

    ``data`` carries ``tool_name``, ``parameters`` and, once run, ``result`` or
    ``error``; pending write actions also keep the originating ``tool_call_id``.
    """

    id: str = Field(default_factory=lambda: _new_id("action"))
    type: ActionType
    entity: str = "data"
    description: str = ""
    status: ActionStatus = ActionStatus.EXECUTED
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def tool_name(self) -> str | None:
        value = self.data.get("tool_name")
        return str(value) if value else None

    @property
    def parameters(self) -> dict[str, Any]:
        value = self.data.get("parameters")
        return dict(value) if isinstance(value, dict) else {}


class ProgressEvent(BaseModel):
    type: ProgressEventType
    timestamp: datetime = Field(default_factory=_utcnow)
    message: str | None = None
    step_id: str | None = None
    step_number: int | None = None
    total_steps: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class NonEmptyMessage(str):
    """User-facing text guaranteed to contain something other than whitespace."""

    def __new__(cls, value: str) -> "NonEmptyMessage":
        if not isinstance(value, str):
            raise TypeError("NonEmptyMessage requires a string")
        stripped = value.strip()
        if not stripped:
            raise ValueError("message must not be empty")
        return super().__new__(cls, stripped)


@dataclass(slots=True)
class ReflectionResult:
    is_satisfied: bool
    should_continue: bool
    next_action: NextAction
    thoughts: str
    corrections: dict[str, Any] | None = None


@dataclass(slots=True)
class VerificationResult:
    is_complete: bool
    message: str
    completed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    remaining_steps: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PlanSummary:
    goal: str
    status: PlanStatus
    total: int
    completed: int
    failed: int
    skipped: int
    pending: int
    progress: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "status": self.status.value,
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "pending": self.pending,
            "progress": self.progress,
        }


__all__ = [
    "AgentAction",
    "ExecutionPlan",
    "NonEmptyMessage",
    "PlanStep",
    "PlanSummary",
    "ProgressEvent",
    "ReflectionResult",
    "VerificationResult",
]
