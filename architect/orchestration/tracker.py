from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..core.logging import get_logger
from .enums import TERMINAL_STEP_STATUSES, PlanStatus, StepStatus
from .models import ExecutionPlan, PlanStep, PlanSummary

logger = get_logger(name=__name__)

__all__ = ["PlanTracker", "PlanTransitionError"]


class PlanTransitionError(RuntimeError):
    """Raised when a step is moved through an illegal status transition."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PlanTracker:
    """Walks a plan's dependency graph and owns every step status transition.

    Failed dependencies leave their dependents permanently blocked; they are
    never skipped implicitly.
    """

    def __init__(self, plan: ExecutionPlan) -> None:
        self.plan = plan
        self._index = {step.id: step for step in plan.steps}

    def start(self) -> None:
        self.plan.status = PlanStatus.ACTIVE

    def complete(self) -> None:
        self.plan.status = PlanStatus.COMPLETED
        self.plan.current_step_id = None
        self.plan.completed_at = _now()

    def fail(self) -> None:
        self.plan.status = PlanStatus.FAILED
        self.plan.current_step_id = None
        self.plan.completed_at = _now()

    def get_step(self, step_id: str) -> PlanStep | None:
        return self._index.get(step_id)

    def are_dependencies_met(self, step: PlanStep) -> bool:
        for dependency_id in step.dependency_ids:
            dependency = self._index.get(dependency_id)
            if dependency is None or dependency.status is not StepStatus.COMPLETED:
                return False
        return True

    def get_next_step(self) -> PlanStep | None:
        if self.current_step() is not None:
            return None
        for step in self.plan.steps:
            if step.status is StepStatus.PENDING and self.are_dependencies_met(step):
                return step
        return None

    def current_step(self) -> PlanStep | None:
        return next((step for step in self.plan.steps if step.status is StepStatus.IN_PROGRESS), None)

    def start_step(self, step_id: str) -> PlanStep:
        step = self._require(step_id, StepStatus.PENDING)
        active = self.current_step()
        if active is not None:
            raise PlanTransitionError(f"Step '{active.id}' is already in progress")
        step.status = StepStatus.IN_PROGRESS
        step.started_at = _now()
        self.plan.current_step_id = step.id
        if self.plan.status is PlanStatus.DRAFT:
            self.plan.status = PlanStatus.ACTIVE
        return step

    def complete_step(self, step_id: str, result: Any = None) -> PlanStep:
        step = self._require(step_id, StepStatus.IN_PROGRESS)
        step.status = StepStatus.COMPLETED
        step.result = result
        return self._finish(step)

    def fail_step(self, step_id: str, error: str) -> PlanStep:
        step = self._require(step_id, StepStatus.IN_PROGRESS)
        step.status = StepStatus.FAILED
        step.error = error
        return self._finish(step)

    def skip_step(self, step_id: str, reason: str) -> PlanStep:
        step = self._index.get(step_id)
        if step is None:
            raise PlanTransitionError(f"Unknown step '{step_id}'")
        if step.status not in (StepStatus.PENDING, StepStatus.IN_PROGRESS):
            raise PlanTransitionError(f"Step '{step_id}' cannot be skipped from {step.status.value}")
        step.status = StepStatus.SKIPPED
        step.error = f"Skipped: {reason}"
        return self._finish(step)

    def is_complete(self) -> bool:
        return all(step.status in TERMINAL_STEP_STATUSES for step in self.plan.steps)

    def has_failures(self) -> bool:
        return any(step.status is StepStatus.FAILED for step in self.plan.steps)

    def completed_count(self) -> int:
        return sum(1 for step in self.plan.steps if step.status is StepStatus.COMPLETED)

    def total_count(self) -> int:
        return len(self.plan.steps)

    def progress(self) -> int:
        """Percentage of steps in a terminal state."""
        total = self.total_count()
        if total == 0:
            return 100
        finished = sum(1 for step in self.plan.steps if step.status in TERMINAL_STEP_STATUSES)
        return round(finished / total * 100)

    def step_number(self, step_id: str) -> int:
        for index, step in enumerate(self.plan.steps):
            if step.id == step_id:
                return index + 1
        return 0

    def summary(self) -> PlanSummary:
        counts = {status: 0 for status in StepStatus}
        for step in self.plan.steps:
            counts[step.status] += 1
        return PlanSummary(
            goal=self.plan.goal,
            status=self.plan.status,
            total=self.total_count(),
            completed=counts[StepStatus.COMPLETED],
            failed=counts[StepStatus.FAILED],
            skipped=counts[StepStatus.SKIPPED],
            pending=counts[StepStatus.PENDING] + counts[StepStatus.IN_PROGRESS],
            progress=self.progress(),
        )

    def _require(self, step_id: str, expected: StepStatus) -> PlanStep:
        step = self._index.get(step_id)
        if step is None:
            raise PlanTransitionError(f"Unknown step '{step_id}'")
        if step.status is not expected:
            raise PlanTransitionError(
                f"Step '{step_id}' is {step.status.value}, expected {expected.value}"
            )
        return step

    def _finish(self, step: PlanStep) -> PlanStep:
        step.completed_at = _now()
        if self.plan.current_step_id == step.id:
            self.plan.current_step_id = None
        logger.debug("plan_step_finished", step_id=step.id, status=step.status.value)
        return step
