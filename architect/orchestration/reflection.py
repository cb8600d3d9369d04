from __future__ import annotations

from typing import Any, Mapping

from ..core.logging import get_logger
from ..services.llm import LLMError
from ..services.messages import ChatMessage
from ..tools.base import ToolDefinition, ToolExecutionResult
from ..tools.utils import normalize_tool_params
from .enums import NextAction, StepStatus
from .models import ExecutionPlan, PlanStep, ReflectionResult
from .parsing import ResponseParseError, extract_json_object
from .planner import OracleCall
from .prompts import build_correction_prompt, build_reflection_prompt

logger = get_logger(name=__name__)

__all__ = ["SelfReflector"]

PARSE_FAILURE_THOUGHT = "Unable to parse reflection, continuing."

_EXPECTED_TYPES: dict[str, Any] = {
    "array": list,
    "object": dict,
    "string": str,
    "number": (int, float),
    "boolean": bool,
}


def _is_error_shaped(value: Any) -> bool:
    return isinstance(value, Mapping) and "error" in value


def _as_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


class SelfReflector:
    """Judges step outcomes: free heuristics for clean successes, the oracle otherwise."""

    async def reflect_on_action_result(
        self,
        step: PlanStep,
        result: ToolExecutionResult,
        plan: ExecutionPlan,
        oracle_call: OracleCall,
    ) -> ReflectionResult:
        quick = self.quick_reflection(step, result, plan)
        if quick is not None:
            return quick
        return await self.deep_reflection(step, result, plan, oracle_call)

    def quick_reflection(
        self,
        step: PlanStep,
        result: ToolExecutionResult,
        plan: ExecutionPlan,
    ) -> ReflectionResult | None:
        if not result.success or result.result is None or _is_error_shaped(result.result):
            return None
        remaining = [
            item
            for item in plan.steps
            if item.id != step.id and item.status in (StepStatus.PENDING, StepStatus.IN_PROGRESS)
        ]
        if remaining:
            return ReflectionResult(
                is_satisfied=True,
                should_continue=True,
                next_action=NextAction.CONTINUE,
                thoughts=f"Step succeeded; {len(remaining)} step(s) remaining.",
            )
        return ReflectionResult(
            is_satisfied=True,
            should_continue=False,
            next_action=NextAction.COMPLETE,
            thoughts="Step succeeded and no steps remain.",
        )

    async def deep_reflection(
        self,
        step: PlanStep,
        result: ToolExecutionResult,
        plan: ExecutionPlan,
        oracle_call: OracleCall,
    ) -> ReflectionResult:
        prompt = build_reflection_prompt(step, result.success, result.result, result.error, plan)
        try:
            reply = await oracle_call([ChatMessage.user(prompt)])
        except LLMError as exc:
            logger.warning("reflection_oracle_failed", step_id=step.id, code=exc.code, error=str(exc))
            return self._default_verdict("Reflection unavailable, continuing.")
        try:
            payload = extract_json_object(reply)
        except ResponseParseError:
            logger.info("reflection_parse_failed", step_id=step.id)
            return self._default_verdict(PARSE_FAILURE_THOUGHT)

        raw_action = str(payload.get("nextAction") or payload.get("next_action") or "").lower()
        try:
            next_action = NextAction(raw_action)
        except ValueError:
            next_action = NextAction.CONTINUE
        corrections = payload.get("corrections")
        return ReflectionResult(
            is_satisfied=_as_bool(payload.get("isSatisfied"), False),
            should_continue=_as_bool(payload.get("shouldContinue"), True),
            next_action=next_action,
            thoughts=str(payload.get("thoughts") or "Continuing..."),
            corrections=dict(corrections) if isinstance(corrections, Mapping) else None,
        )

    async def suggest_parameter_correction(
        self,
        step: PlanStep,
        error: str,
        tool: ToolDefinition,
        oracle_call: OracleCall,
    ) -> dict[str, Any] | None:
        """Ask the oracle for a corrected parameter set; None when it has nothing usable."""
        try:
            reply = await oracle_call([ChatMessage.user(build_correction_prompt(step, error, tool))])
            payload = extract_json_object(reply)
        except (LLMError, ResponseParseError) as exc:
            logger.info("parameter_correction_unavailable", step_id=step.id, error=str(exc))
            return None
        parameters = payload.get("parameters")
        if not isinstance(parameters, Mapping):
            return None
        corrected = normalize_tool_params(parameters)
        if corrected == normalize_tool_params(step.parameters):
            return None
        return corrected

    @staticmethod
    def verify_completion(result: ToolExecutionResult, expected_type: str | None = None) -> bool:
        if not result.success or _is_error_shaped(result.result):
            return False
        data = result.result
        if expected_type:
            expected = _EXPECTED_TYPES.get(expected_type)
            if expected is not None:
                if expected_type == "number" and isinstance(data, bool):
                    return False
                return isinstance(data, expected)
        return data is not None

    @staticmethod
    def _default_verdict(thoughts: str) -> ReflectionResult:
        return ReflectionResult(
            is_satisfied=False,
            should_continue=True,
            next_action=NextAction.CONTINUE,
            thoughts=thoughts,
        )
