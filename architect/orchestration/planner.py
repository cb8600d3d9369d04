from __future__ import annotations

import re
from typing import Any, Awaitable, Callable, Mapping, Sequence

from pydantic import ValidationError

from ..core import metrics
from ..core.logging import get_logger
from ..services.messages import ChatMessage
from ..tools.base import ToolDefinition
from ..tools.utils import normalize_tool_params
from .models import ExecutionPlan, PlanStep
from .parsing import ResponseParseError, extract_json_object
from .prompts import build_planning_prompt

logger = get_logger(name=__name__)

__all__ = ["OracleCall", "PlanGenerator", "create_quick_plan", "is_simple_conversational_query"]

OracleCall = Callable[[list[ChatMessage]], Awaitable[str]]

_ACTION_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(create|add|make|new|generate|build)\b",
        r"\b(delete|remove|clear|erase|destroy|clean)\b",
        r"\b(update|edit|modify|change|set)\b",
        r"\b(list|show|get|fetch|find|search|what|tell me)\b",
        r"\b(help|need|want|can you|could you)\b",
    )
)
_SIMPLE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(hi|hello|hey|greetings|howdy|yo)\b",
        r"^(thanks?|thank you|thx)\b",
        r"^(ok|okay|sure|alright|got it|understood)\b",
        r"^(yes|no|yep|nope|maybe)\b",
        r"^(what'?s up|sup|how are you|how'?s it going)\b",
        r"^(bye|goodbye|see you|later|cya)\b",
        r"^(cool|awesome|great|nice|amazing)\b",
        r"^(wow|oh|oh my|wowza)\b",
    )
)
_FALLBACK_KEYWORDS = ("create", "help", "need", "list", "show")
FALLBACK_CONVERSATIONAL_GOAL = "Respond to user message"


def is_simple_conversational_query(content: str) -> bool:
    """True for greetings, thanks and other short messages that need no tools."""
    trimmed = content.strip().lower()
    if any(pattern.search(trimmed) for pattern in _ACTION_PATTERNS):
        return False
    if any(pattern.search(trimmed) for pattern in _SIMPLE_PATTERNS):
        return True
    return len(trimmed) < 30 and "?" not in trimmed


def create_quick_plan(goal: str, steps: Sequence[Mapping[str, Any]]) -> ExecutionPlan:
    """Build a plan directly from step descriptors without consulting the oracle."""
    built: list[PlanStep] = []
    for raw in steps:
        tool_name = raw.get("tool_name") or raw.get("toolName")
        built.append(
            PlanStep(
                description=str(raw.get("description") or f"Run {tool_name}"),
                tool_name=str(tool_name) if tool_name else None,
                parameters=normalize_tool_params(raw.get("parameters")) if tool_name else None,
                dependency_ids=_resolve_dependencies(raw, built),
            )
        )
    return ExecutionPlan(goal=goal, steps=built)


def _resolve_dependencies(raw: Mapping[str, Any], earlier: Sequence[PlanStep]) -> list[str]:
    references = raw.get("dependsOn") or raw.get("depends_on") or raw.get("dependencyIds") or []
    if not isinstance(references, (list, tuple)):
        references = [references]
    known_ids = {step.id for step in earlier}
    resolved: list[str] = []
    for reference in references:
        if isinstance(reference, bool):
            continue
        if isinstance(reference, int) and 1 <= reference <= len(earlier):
            resolved.append(earlier[reference - 1].id)
        elif isinstance(reference, str) and reference.isdigit() and 1 <= int(reference) <= len(earlier):
            resolved.append(earlier[int(reference) - 1].id)
        elif isinstance(reference, str) and reference in known_ids:
            resolved.append(reference)
    return list(dict.fromkeys(resolved))


class PlanGenerator:
    """Turns a request into a dependency-ordered plan using the oracle.

    Malformed replies fall back to a deterministic plan. Transport failures
    raised by ``oracle_call`` propagate so the caller can report them.
    """

    def __init__(self, *, max_steps: int = 8) -> None:
        self._max_steps = max_steps

    async def generate_plan(
        self,
        request: str,
        tools: Sequence[ToolDefinition],
        oracle_call: OracleCall,
    ) -> ExecutionPlan:
        messages = [ChatMessage.system(build_planning_prompt(tools)), ChatMessage.user(request)]
        reply = await oracle_call(messages)
        try:
            payload = extract_json_object(reply)
            plan = self._plan_from_payload(payload, request)
        except (ResponseParseError, ValidationError, TypeError, ValueError) as exc:
            logger.warning("plan_parse_failed", error=str(exc), response=(reply or "")[:500])
            plan = self.create_fallback_plan(request)
            metrics.record_plan_metrics(source="fallback", steps=len(plan.steps))
            return plan
        metrics.record_plan_metrics(source="oracle", steps=len(plan.steps))
        logger.info("plan_generated", goal=plan.goal, steps=len(plan.steps))
        return plan

    def create_fallback_plan(self, request: str) -> ExecutionPlan:
        trimmed = request.strip()
        lowered = trimmed.lower()
        if len(trimmed) < 50 and not any(keyword in lowered for keyword in _FALLBACK_KEYWORDS):
            return ExecutionPlan(goal=FALLBACK_CONVERSATIONAL_GOAL, steps=[])
        goal = f"Handle: {trimmed[:100]}..." if len(trimmed) > 100 else f"Handle: {trimmed}"
        step = PlanStep(description=f'Process the user\'s request: "{trimmed}"')
        return ExecutionPlan(goal=goal, steps=[step])

    def _plan_from_payload(self, payload: Mapping[str, Any], request: str) -> ExecutionPlan:
        goal = str(payload.get("goal") or "").strip() or request.strip()[:100] or FALLBACK_CONVERSATIONAL_GOAL
        raw_steps = payload.get("steps") or []
        if not isinstance(raw_steps, list):
            raise ValueError("Plan steps must be a list")
        steps: list[PlanStep] = []
        for raw in raw_steps[: self._max_steps]:
            if not isinstance(raw, Mapping):
                continue
            tool_name = raw.get("toolName") or raw.get("tool_name") or raw.get("tool")
            tool_name = str(tool_name).strip() if tool_name else None
            description = str(raw.get("description") or "").strip()
            if not description:
                if not tool_name:
                    continue
                description = f"Run {tool_name}"
            reasoning = raw.get("reasoning")
            steps.append(
                PlanStep(
                    description=description,
                    tool_name=tool_name or None,
                    parameters=normalize_tool_params(raw.get("parameters")) if tool_name else None,
                    reasoning=str(reasoning) if reasoning else None,
                    dependency_ids=_resolve_dependencies(raw, steps),
                )
            )
        return ExecutionPlan(goal=goal, steps=steps)
