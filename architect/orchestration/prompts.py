"""Prompt templates sent to the oracle."""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from ..tools.base import ToolDefinition
from .models import AgentAction, ExecutionPlan, PlanStep

__all__ = [
    "build_correction_prompt",
    "build_planning_prompt",
    "build_reflection_prompt",
    "build_summary_prompt",
    "build_system_prompt",
    "describe_tools",
]

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that can use tools to read and change the user's data. "
    "Use a tool whenever the request needs information or changes you cannot provide directly. "
    "Answer conversational messages directly without tools. Be concise."
)

PLANNING_INSTRUCTIONS = """You plan how to satisfy a user request with the available tools.

Available tools:
{tools}

Respond with JSON only, using this shape:
{{"goal": "short description of the goal",
  "steps": [{{"description": "what this step does",
             "toolName": "tool to call or null",
             "parameters": {{}},
             "reasoning": "why this step is needed",
             "dependsOn": [1]}}]}}

Rules:
- Use only tool names from the list above and fill in required parameters.
- "dependsOn" lists earlier step numbers (1-based) that must finish first; omit it when there are none.
- For greetings, thanks or other purely conversational messages return an empty "steps" list and set toolName to null.
- Keep plans short; prefer one step when one tool call answers the request."""


def _describe_type(schema: Mapping[str, Any]) -> str:
    kind = schema.get("type")
    if kind == "array":
        items = schema.get("items")
        item_type = items.get("type", "any") if isinstance(items, Mapping) else "any"
        return f"array of {item_type}"
    if isinstance(schema.get("enum"), list):
        return "one of " + ", ".join(str(value) for value in schema["enum"])
    return str(kind or "any")


def describe_tools(tools: Sequence[ToolDefinition]) -> str:
    lines: list[str] = []
    for tool in tools:
        lines.append(f"- {tool.name}: {tool.description}")
        schema = tool.parameters if isinstance(tool.parameters, Mapping) else {}
        properties = schema.get("properties") if isinstance(schema.get("properties"), Mapping) else {}
        required = set(schema.get("required") or [])
        for name, prop in properties.items():
            prop = prop if isinstance(prop, Mapping) else {}
            marker = "required" if name in required else "optional"
            detail = f"    - {name} ({marker}, {_describe_type(prop)})"
            if prop.get("description"):
                detail += f": {prop['description']}"
            lines.append(detail)
    return "\n".join(lines) if lines else "(no tools available)"


def build_system_prompt(tools: Sequence[ToolDefinition], override: str | None = None) -> str:
    base = override.strip() if override and override.strip() else DEFAULT_SYSTEM_PROMPT
    if not tools:
        return base
    listing = "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)
    return f"{base}\n\nYou can use these tools:\n{listing}"


def build_planning_prompt(tools: Sequence[ToolDefinition]) -> str:
    return PLANNING_INSTRUCTIONS.format(tools=describe_tools(tools))


def _compact(value: Any, limit: int = 1500) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


def build_reflection_prompt(step: PlanStep, success: bool, result: Any, error: str | None, plan: ExecutionPlan) -> str:
    remaining = [item.description for item in plan.steps if item.status.value in ("pending", "in_progress")]
    return (
        "You are reviewing the outcome of one step of a plan.\n\n"
        f"Goal: {plan.goal}\n"
        f"Step: {step.description}\n"
        f"Tool: {step.tool_name or 'none'}\n"
        f"Parameters: {_compact(step.parameters or {})}\n"
        f"Succeeded: {'yes' if success else 'no'}\n"
        f"Result: {_compact(result)}\n"
        f"Error: {error or 'none'}\n"
        f"Remaining steps: {', '.join(remaining) or 'none'}\n\n"
        "Respond with JSON only:\n"
        '{"isSatisfied": bool, "shouldContinue": bool, '
        '"nextAction": "continue" | "retry" | "skip" | "complete", '
        '"thoughts": "short reasoning", "corrections": {"parameter": "corrected value"} | null}\n'
        'Use "retry" only when different parameters are likely to succeed.'
    )


def build_correction_prompt(step: PlanStep, error: str, tool: ToolDefinition) -> str:
    return (
        "A tool call failed and needs corrected parameters.\n\n"
        f"Step: {step.description}\n"
        f"Tool: {tool.name} - {tool.description}\n"
        f"Parameter schema: {_compact(dict(tool.parameters) if isinstance(tool.parameters, Mapping) else {})}\n"
        f"Parameters used: {_compact(step.parameters or {})}\n"
        f"Error: {error}\n\n"
        'Respond with JSON only: {"parameters": {...}} containing the full corrected parameters, '
        'or {"parameters": null} when the call cannot be fixed.'
    )


def build_summary_prompt(request: str, actions: Sequence[AgentAction], plan: ExecutionPlan | None) -> str:
    lines = [f"The user asked: {request}", "", "Actions taken:"]
    for action in actions:
        outcome = action.data.get("result") if action.status.value == "executed" else action.data.get("error")
        lines.append(f"- [{action.status.value}] {action.description}: {_compact(outcome, 800)}")
    if plan is not None:
        lines.extend(["", f"Plan goal: {plan.goal}"])
    lines.extend(
        [
            "",
            "Write a short, friendly reply to the user describing what was found or done. "
            "Mention failures plainly. Do not invent results that are not listed above.",
        ]
    )
    return "\n".join(lines)
