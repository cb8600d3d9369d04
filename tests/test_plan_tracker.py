from __future__ import annotations

import pytest

from architect.orchestration.enums import PlanStatus, StepStatus
from architect.orchestration.models import ExecutionPlan, PlanStep
from architect.orchestration.tracker import PlanTracker, PlanTransitionError


def _plan(*steps: PlanStep) -> ExecutionPlan:
    return ExecutionPlan(goal="Tidy tasks", steps=list(steps))


def test_plan_is_complete_when_every_step_is_terminal() -> None:
    first, second, third = PlanStep(description="a"), PlanStep(description="b"), PlanStep(description="c")
    tracker = PlanTracker(_plan(first, second, third))

    tracker.start_step(first.id)
    tracker.complete_step(first.id, {"ok": True})
    tracker.start_step(second.id)
    tracker.fail_step(second.id, "boom")
    tracker.skip_step(third.id, "not needed")

    assert tracker.is_complete() is True
    assert tracker.has_failures() is True
    assert third.error == "Skipped: not needed"
    assert tracker.progress() == 100


def test_dependent_step_waits_for_completion() -> None:
    first = PlanStep(description="fetch tasks")
    second = PlanStep(description="summarize", dependency_ids=[first.id])
    tracker = PlanTracker(_plan(first, second))

    assert tracker.get_next_step() is first
    tracker.start_step(first.id)
    assert tracker.get_next_step() is None

    tracker.complete_step(first.id)
    assert tracker.get_next_step() is second


def test_failed_dependency_blocks_without_skipping() -> None:
    first = PlanStep(description="fetch tasks")
    second = PlanStep(description="summarize", dependency_ids=[first.id])
    tracker = PlanTracker(_plan(first, second))

    tracker.start_step(first.id)
    tracker.fail_step(first.id, "offline")

    assert tracker.get_next_step() is None
    assert second.status is StepStatus.PENDING
    assert tracker.is_complete() is False


def test_only_one_step_may_run_at_a_time() -> None:
    first, second = PlanStep(description="a"), PlanStep(description="b")
    tracker = PlanTracker(_plan(first, second))
    tracker.start_step(first.id)

    with pytest.raises(PlanTransitionError):
        tracker.start_step(second.id)


def test_completing_a_pending_step_is_rejected() -> None:
    step = PlanStep(description="a")
    tracker = PlanTracker(_plan(step))

    with pytest.raises(PlanTransitionError):
        tracker.complete_step(step.id)


def test_starting_first_step_activates_plan() -> None:
    step = PlanStep(description="a")
    plan = _plan(step)
    tracker = PlanTracker(plan)

    tracker.start_step(step.id)

    assert plan.status is PlanStatus.ACTIVE
    assert plan.current_step_id == step.id
    assert tracker.step_number(step.id) == 1


def test_summary_counts_steps_by_status() -> None:
    first, second, third = PlanStep(description="a"), PlanStep(description="b"), PlanStep(description="c")
    tracker = PlanTracker(_plan(first, second, third))
    tracker.start_step(first.id)
    tracker.complete_step(first.id)

    summary = tracker.summary()

    assert (summary.total, summary.completed, summary.pending) == (3, 1, 2)
    assert summary.progress == 33
    assert summary.to_dict()["goal"] == "Tidy tasks"


def test_empty_plan_reports_full_progress() -> None:
    tracker = PlanTracker(_plan())

    assert tracker.is_complete() is True
    assert tracker.progress() == 100
