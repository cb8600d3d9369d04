from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Mapping

from ..core.logging import get_logger
from .enums import ProgressEventType
from .models import ExecutionPlan, PlanStep, ProgressEvent

logger = get_logger(name=__name__)

__all__ = ["ProgressStreamer", "ProgressSubscriber", "sanitize_result"]

ProgressSubscriber = Callable[[ProgressEvent], "Awaitable[None] | None"]

MAX_STRING_LENGTH = 500
MAX_LIST_ITEMS = 10
MAX_MAPPING_KEYS = 20


def sanitize_result(value: Any) -> Any:
    """Shrink a tool result so it is safe to put on the wire."""
    if isinstance(value, str):
        return value if len(value) <= MAX_STRING_LENGTH else value[:MAX_STRING_LENGTH] + "..."
    if isinstance(value, (list, tuple)):
        return [sanitize_result(item) for item in list(value)[:MAX_LIST_ITEMS]]
    if isinstance(value, Mapping):
        return {str(key): sanitize_result(item) for key, item in list(value.items())[:MAX_MAPPING_KEYS]}
    if value is None or isinstance(value, (int, float, bool)):
        return value
    return str(value)


class ProgressStreamer:
    """Fan-out of progress events to any number of live observers.

    Delivery happens inline with the turn; a subscriber that raises is logged
    and skipped without affecting the others.
    """

    def __init__(self) -> None:
        self._subscribers: list[ProgressSubscriber] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: ProgressSubscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            self.unsubscribe(subscriber)

        return _unsubscribe

    def unsubscribe(self, subscriber: ProgressSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def clear(self) -> None:
        self._subscribers.clear()

    async def emit(self, event: ProgressEvent) -> None:
        for subscriber in list(self._subscribers):
            await self._safe_invoke(subscriber, event)

    async def stream_plan_created(self, plan: ExecutionPlan) -> None:
        await self.emit(
            ProgressEvent(
                type=ProgressEventType.PLAN,
                message=plan.goal,
                total_steps=len(plan.steps),
                data={
                    "plan_id": plan.id,
                    "goal": plan.goal,
                    "steps": [
                        {"id": step.id, "description": step.description, "tool_name": step.tool_name}
                        for step in plan.steps
                    ],
                },
            )
        )

    async def stream_step_starting(self, step: PlanStep, step_number: int, total_steps: int) -> None:
        await self.emit(
            ProgressEvent(
                type=ProgressEventType.STEP_START,
                message=step.description,
                step_id=step.id,
                step_number=step_number,
                total_steps=total_steps,
                data={"tool_name": step.tool_name},
            )
        )

    async def stream_step_completed(
        self,
        step: PlanStep,
        step_number: int,
        total_steps: int,
        result: Any = None,
    ) -> None:
        await self.emit(
            ProgressEvent(
                type=ProgressEventType.STEP_COMPLETE,
                message=step.description,
                step_id=step.id,
                step_number=step_number,
                total_steps=total_steps,
                data={"tool_name": step.tool_name, "result": sanitize_result(result)},
            )
        )

    async def stream_step_failed(self, step: PlanStep, step_number: int, total_steps: int, error: str) -> None:
        await self.emit(
            ProgressEvent(
                type=ProgressEventType.STEP_FAILED,
                message=error,
                step_id=step.id,
                step_number=step_number,
                total_steps=total_steps,
                data={"tool_name": step.tool_name, "error": error},
            )
        )

    async def stream_thinking(self, message: str) -> None:
        await self.emit(ProgressEvent(type=ProgressEventType.THINKING, message=message))

    async def stream_complete(self, message: str, **data: Any) -> None:
        await self.emit(ProgressEvent(type=ProgressEventType.COMPLETE, message=message, data=data))

    async def stream_error(self, error: str) -> None:
        await self.emit(ProgressEvent(type=ProgressEventType.ERROR, message=error, data={"error": error}))

    async def _safe_invoke(self, subscriber: ProgressSubscriber, event: ProgressEvent) -> None:
        try:
            outcome = subscriber(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.warning("progress_subscriber_failed", event_type=event.type.value, error=str(exc))
