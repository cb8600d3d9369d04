from __future__ import annotations

from typing import Sequence

from .enums import StepStatus
from .models import ExecutionPlan, VerificationResult

__all__ = ["CompletionVerifier"]

NO_PLAN_MESSAGE = "No plan was created, responding directly to user request"


def _count(plan: ExecutionPlan, *statuses: StepStatus) -> int:
    return sum(1 for step in plan.steps if step.status in statuses)


class CompletionVerifier:
    """Grades the final plan state and writes the deterministic fallback narrative."""

    def verify_plan_complete(self, plan: ExecutionPlan | None) -> VerificationResult:
        if plan is None:
            return VerificationResult(is_complete=True, message=NO_PLAN_MESSAGE)

        completed = _count(plan, StepStatus.COMPLETED)
        failed = _count(plan, StepStatus.FAILED)
        skipped = _count(plan, StepStatus.SKIPPED)
        remaining = [
            step.description
            for step in plan.steps
            if step.status in (StepStatus.PENDING, StepStatus.IN_PROGRESS)
        ]

        if not remaining:
            message = f"Plan {plan.goal} finished: {completed} completed, {failed} failed"
            if skipped:
                message += f", {skipped} skipped"
            return VerificationResult(
                is_complete=True,
                message=message,
                completed_steps=completed,
                failed_steps=failed,
                skipped_steps=skipped,
            )

        return VerificationResult(
            is_complete=False,
            message=(
                f"Plan incomplete: {completed}/{len(plan.steps)} steps completed, "
                f"{failed} failed, {len(remaining)} remaining"
            ),
            completed_steps=completed,
            failed_steps=failed,
            skipped_steps=skipped,
            remaining_steps=remaining,
            suggestions=self._suggestions(plan, remaining),
        )

    def verify_has_content(self, message: str | None, actions: Sequence[object]) -> VerificationResult:
        if message and message.strip():
            return VerificationResult(is_complete=True, message="Has meaningful response message")
        if actions:
            return VerificationResult(is_complete=True, message="Has actions to report to user")
        return VerificationResult(
            is_complete=False,
            message="No message or actions to return",
            suggestions=[
                "Generate a summary of what was accomplished",
                "Report on the status of the plan",
            ],
        )

    def verify_made_progress(self, plan: ExecutionPlan | None, actions_taken: int, iterations: int) -> VerificationResult:
        if plan is None:
            return VerificationResult(is_complete=True, message="Direct response mode")
        completed = _count(plan, StepStatus.COMPLETED)
        if completed == 0 and actions_taken == 0 and iterations > 1:
            return VerificationResult(
                is_complete=False,
                message="No progress made after multiple iterations",
                suggestions=["Check if tools are working", "Try a different approach", "Ask user for clarification"],
            )
        return VerificationResult(
            is_complete=True,
            message=f"Progress: {completed} steps, {actions_taken} actions",
            completed_steps=completed,
        )

    def generate_summary(self, plan: ExecutionPlan | None, message: str | None = None) -> str:
        if message and message.strip():
            return message.strip()
        if plan is None:
            return "I've processed your request."
        total = len(plan.steps)
        completed = _count(plan, StepStatus.COMPLETED)
        failed = _count(plan, StepStatus.FAILED)
        if total and completed == total and failed == 0:
            return f"I've completed all {total} steps: {plan.goal}"
        if completed > 0:
            return f"I've completed {completed} of {total} steps for: {plan.goal}"
        return f"Working on: {plan.goal}"

    @staticmethod
    def _suggestions(plan: ExecutionPlan, remaining: list[str]) -> list[str]:
        suggestions: list[str] = []
        failed = [step.description for step in plan.steps if step.status is StepStatus.FAILED]
        if failed:
            suggestions.append(f"Retry failed steps: {', '.join(failed)}")
        if remaining:
            suggestions.append(f"Continue with pending steps: {', '.join(remaining)}")
        if len(remaining) == 1 and len(plan.steps) > 1:
            suggestions.append("Consider skipping the stuck step or asking for help")
        return suggestions
