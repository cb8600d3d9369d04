from __future__ import annotations

from enum import Enum


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionType(str, Enum):
    READ = "read"
    WRITE = "write"
    PLAN = "plan"
    THINK = "think"
    ERROR = "error"


class ActionStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"


class NextAction(str, Enum):
    CONTINUE = "continue"
    RETRY = "retry"
    SKIP = "skip"
    COMPLETE = "complete"


class ProgressEventType(str, Enum):
    PLAN = "plan"
    STEP_START = "step_start"
    STEP_COMPLETE = "step_complete"
    STEP_FAILED = "step_failed"
    THINKING = "thinking"
    COMPLETE = "complete"
    ERROR = "error"


class TurnPhase(str, Enum):
    PLANNING = "planning"
    EXECUTING_PLAN_STEP = "executing_plan_step"
    REACT_TOOL_CALL = "react_tool_call"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SUMMARIZING = "summarizing"
    DONE = "done"


class GuardrailKind(str, Enum):
    DURATION = "max_duration"
    ITERATIONS = "max_steps"
    LOOP = "loop_detected"


TERMINAL_STEP_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED})

__all__ = [
    "ActionStatus",
    "ActionType",
    "GuardrailKind",
    "NextAction",
    "PlanStatus",
    "ProgressEventType",
    "StepStatus",
    "TERMINAL_STEP_STATUSES",
    "TurnPhase",
]
