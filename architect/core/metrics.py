from __future__ import annotations

from prometheus_client import Counter, Histogram

TURNS_TOTAL = Counter(
    "architect_turns_total",
    "Agent turns processed by entry point and final status",
    labelnames=("entry_point", "status"),
)

TURN_LATENCY_SECONDS = Histogram(
    "architect_turn_latency_seconds",
    "Wall-clock latency of agent turns",
    labelnames=("entry_point",),
)

LLM_REQUESTS_TOTAL = Counter(
    "architect_llm_requests_total",
    "Oracle requests by provider and outcome",
    labelnames=("provider", "outcome"),
)

LLM_RETRIES_TOTAL = Counter(
    "architect_llm_retries_total",
    "Oracle request retries by provider and reason",
    labelnames=("provider", "reason"),
)

TOOL_INVOCATIONS_TOTAL = Counter(
    "architect_tool_invocations_total",
    "Number of tool invocations per tool",
    labelnames=("tool", "cached"),
)

TOOL_ERRORS_TOTAL = Counter(
    "architect_tool_errors_total",
    "Tool invocation failures",
    labelnames=("tool",),
)

TOOL_LATENCY_SECONDS = Histogram(
    "architect_tool_latency_seconds",
    "Latency for tool invocations",
    labelnames=("tool",),
)

GUARDRAIL_TRIPS_TOTAL = Counter(
    "architect_guardrail_trips_total",
    "Turns terminated early by a guardrail",
    labelnames=("guardrail",),
)

PLAN_STEPS = Histogram(
    "architect_plan_steps",
    "Number of steps in generated plans",
    labelnames=("source",),
    buckets=(0, 1, 2, 3, 4, 5, 6, 8, 10, 15),
)


def record_turn(*, entry_point: str, status: str, latency: float) -> None:
    TURNS_TOTAL.labels(entry_point=entry_point, status=status).inc()
    TURN_LATENCY_SECONDS.labels(entry_point=entry_point).observe(max(0.0, latency))


def record_llm_request(*, provider: str, outcome: str) -> None:
    LLM_REQUESTS_TOTAL.labels(provider=provider, outcome=outcome).inc()


def record_llm_retry(*, provider: str, reason: str) -> None:
    LLM_RETRIES_TOTAL.labels(provider=provider, reason=reason).inc()


def record_tool_invocation(*, tool: str, cached: bool, success: bool, latency: float | None = None) -> None:
    TOOL_INVOCATIONS_TOTAL.labels(tool=tool, cached=str(cached).lower()).inc()
    if not success:
        TOOL_ERRORS_TOTAL.labels(tool=tool).inc()
    if latency is not None:
        TOOL_LATENCY_SECONDS.labels(tool=tool).observe(max(0.0, latency))


def increment_guardrail_trip(*, guardrail: str) -> None:
    GUARDRAIL_TRIPS_TOTAL.labels(guardrail=guardrail).inc()


def record_plan_metrics(*, source: str, steps: int) -> None:
    PLAN_STEPS.labels(source=source).observe(max(0, steps))


__all__ = [
    "GUARDRAIL_TRIPS_TOTAL",
    "LLM_REQUESTS_TOTAL",
    "LLM_RETRIES_TOTAL",
    "PLAN_STEPS",
    "TOOL_ERRORS_TOTAL",
    "TOOL_INVOCATIONS_TOTAL",
    "TOOL_LATENCY_SECONDS",
    "TURNS_TOTAL",
    "TURN_LATENCY_SECONDS",
    "increment_guardrail_trip",
    "record_llm_request",
    "record_llm_retry",
    "record_plan_metrics",
    "record_tool_invocation",
    "record_turn",
]
