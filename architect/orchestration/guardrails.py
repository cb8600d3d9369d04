from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from ..core.config import AgentRuntimeSettings
from ..core.logging import get_logger
from ..core.metrics import increment_guardrail_trip
from ..tools.base import ToolCall
from ..tools.utils import tool_call_signature
from .enums import GuardrailKind

logger = get_logger(name=__name__)

__all__ = ["GuardrailTrip", "TurnGuardrails"]

DURATION_MESSAGE = (
    "I've been working on this for a while. Let me give you an update on what I've accomplished so far."
)
ITERATION_MESSAGE = (
    "I've processed your request through multiple steps. Let me know if you'd like me to continue."
)
LOOP_MESSAGE = (
    "I seem to be repeating the same action without making progress. "
    "Could you clarify what you'd like me to do?"
)


@dataclass(slots=True)
class GuardrailTrip:
    kind: GuardrailKind
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def model_dump(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "metadata": dict(self.metadata)}


class TurnGuardrails:
    """Budgets that bound every turn: wall clock, iterations, and repeated tool batches."""

    def __init__(
        self,
        *,
        max_duration_seconds: float,
        max_iterations: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_duration = max_duration_seconds
        self._max_iterations = max_iterations
        self._clock = clock
        self._started = clock()

    @classmethod
    def from_settings(
        cls,
        runtime: AgentRuntimeSettings,
        *,
        max_iterations: int | None = None,
        max_duration_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "TurnGuardrails":
        return cls(
            max_duration_seconds=max_duration_seconds or runtime.max_duration_seconds,
            max_iterations=max_iterations or runtime.max_steps,
            clock=clock,
        )

    @property
    def elapsed_seconds(self) -> float:
        return self._clock() - self._started

    def check_budget(self, iteration: int) -> GuardrailTrip | None:
        """Called before each transition; ``iteration`` is the count already consumed."""
        elapsed = self.elapsed_seconds
        if elapsed >= self._max_duration:
            return self._trip(
                GuardrailKind.DURATION,
                DURATION_MESSAGE,
                elapsed_seconds=round(elapsed, 3),
                limit_seconds=self._max_duration,
            )
        if iteration >= self._max_iterations:
            return self._trip(
                GuardrailKind.ITERATIONS,
                ITERATION_MESSAGE,
                iterations=iteration,
                limit=self._max_iterations,
            )
        return None

    def check_react_budget(self, react_iterations: int, limit: int) -> GuardrailTrip | None:
        if react_iterations >= limit:
            return self._trip(
                GuardrailKind.ITERATIONS,
                ITERATION_MESSAGE,
                iterations=react_iterations,
                limit=limit,
                phase="react",
            )
        return None

    def check_loop(self, calls: Sequence[ToolCall], last_signature: str | None) -> tuple[str, GuardrailTrip | None]:
        """Return the batch signature and a trip when it repeats the previous batch."""
        signature = tool_call_signature(calls)
        if last_signature is not None and signature == last_signature:
            return signature, self._trip(GuardrailKind.LOOP, LOOP_MESSAGE, tools=[call.name for call in calls])
        return signature, None

    @staticmethod
    def _trip(kind: GuardrailKind, message: str, **metadata: Any) -> GuardrailTrip:
        logger.warning("guardrail_tripped", guardrail=kind.value, **metadata)
        increment_guardrail_trip(guardrail=kind.value)
        return GuardrailTrip(kind=kind, message=message, metadata=metadata)
