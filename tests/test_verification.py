from __future__ import annotations

from architect.orchestration.enums import StepStatus
from architect.orchestration.models import ExecutionPlan, PlanStep
from architect.orchestration.verification import NO_PLAN_MESSAGE, CompletionVerifier


def test_missing_plan_counts_as_complete() -> None:
    result = CompletionVerifier().verify_plan_complete(None)

    assert result.is_complete is True
    assert result.message == NO_PLAN_MESSAGE


def test_finished_plan_reports_counts() -> None:
    plan = ExecutionPlan(
        goal="Tidy tasks",
        steps=[
            PlanStep(description="a", status=StepStatus.COMPLETED),
            PlanStep(description="b", status=StepStatus.FAILED),
            PlanStep(description="c", status=StepStatus.SKIPPED),
        ],
    )

    result = CompletionVerifier().verify_plan_complete(plan)

    assert result.is_complete is True
    assert result.message == "Plan Tidy tasks finished: 1 completed, 1 failed, 1 skipped"


def test_incomplete_plan_lists_remaining_steps() -> None:
    plan = ExecutionPlan(
        goal="Tidy tasks",
        steps=[
            PlanStep(description="fetch", status=StepStatus.FAILED),
            PlanStep(description="archive"),
        ],
    )

    result = CompletionVerifier().verify_plan_complete(plan)

    assert result.is_complete is False
    assert result.remaining_steps == ["archive"]
    assert "Retry failed steps: fetch" in result.suggestions


def test_content_and_progress_checks() -> None:
    verifier = CompletionVerifier()
    plan = ExecutionPlan(goal="Tidy", steps=[PlanStep(description="a")])

    assert verifier.verify_has_content("  ", []).is_complete is False
    assert verifier.verify_has_content(None, [object()]).is_complete is True
    assert verifier.verify_made_progress(plan, actions_taken=0, iterations=3).is_complete is False
    assert verifier.verify_made_progress(None, actions_taken=0, iterations=3).is_complete is True


def test_generate_summary_prefers_message() -> None:
    verifier = CompletionVerifier()
    plan = ExecutionPlan(goal="Tidy", steps=[PlanStep(description="a", status=StepStatus.COMPLETED)])

    assert verifier.generate_summary(plan, " done ") == "done"
    assert verifier.generate_summary(plan) == "I've completed all 1 steps: Tidy"
    assert verifier.generate_summary(None) == "I've processed your request."
