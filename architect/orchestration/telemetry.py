from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from pydantic import BaseModel, Field

from ..core.logging import get_logger
from ..services.messages import ChatMessage

logger = get_logger(name=__name__)

__all__ = [
    "AgentTelemetry",
    "TelemetryEvent",
    "TelemetryRecorder",
    "estimate_message_tokens",
    "estimate_tokens",
]


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def estimate_message_tokens(messages: Iterable[ChatMessage]) -> int:
    total_chars = 0
    for message in messages:
        total_chars += len(message.content or "")
        for call in message.tool_calls:
            total_chars += len(call.name) + len(json.dumps(call.parameters, default=str))
    return math.ceil(total_chars / 4) if total_chars else 0


class TelemetryEvent(BaseModel):
    type: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed_ms: float = Field(0.0, ge=0.0)
    data: dict[str, Any] = Field(default_factory=dict)


@dataclass(slots=True)
class AgentTelemetry:
    run_id: str
    start_ms: float
    duration_ms: float | None = None
    llm_calls: int = 0
    tool_calls: int = 0
    retries: int = 0
    errors: int = 0
    token_estimate_in: int = 0
    token_estimate_out: int = 0
    dropped_events: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "start_ms": self.start_ms,
            "duration_ms": self.duration_ms,
            "llm_calls": self.llm_calls,
            "tool_calls": self.tool_calls,
            "retries": self.retries,
            "errors": self.errors,
            "token_estimate_in": self.token_estimate_in,
            "token_estimate_out": self.token_estimate_out,
            "dropped_events": self.dropped_events,
        }


class TelemetryRecorder:
    """Per-turn counters plus an ordered, bounded event log."""

    def __init__(
        self,
        run_id: str,
        *,
        max_events: int = 80,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._started = clock()
        self._max_events = max_events
        self._enabled = enabled
        self._sealed = False
        self.events: list[TelemetryEvent] = []
        self.telemetry = AgentTelemetry(run_id=run_id, start_ms=time.time() * 1000)

    @property
    def elapsed_ms(self) -> float:
        return max(0.0, (self._clock() - self._started) * 1000)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def record_event(self, event_type: str, **data: Any) -> None:
        if not self._enabled:
            return
        event = TelemetryEvent(type=event_type, elapsed_ms=self.elapsed_ms, data=data)
        if len(self.events) >= self._max_events:
            self.telemetry.dropped_events += 1
            return
        self.events.append(event)

    def instrumentation_hook(self, event: str, payload: dict[str, Any]) -> None:
        """Adapter for ``LLMClient`` instrumentation callbacks."""
        if event == "llm_retry":
            self.telemetry.retries += 1
        self.record_event(event, **payload)

    def record_llm_call(self, messages: Iterable[ChatMessage], output: str = "") -> None:
        self.telemetry.llm_calls += 1
        self.telemetry.token_estimate_in += estimate_message_tokens(messages)
        self.telemetry.token_estimate_out += estimate_tokens(output)

    def record_tool_call(self) -> None:
        self.telemetry.tool_calls += 1

    def record_error(self, error: str, **data: Any) -> None:
        self.telemetry.errors += 1
        self.record_event("error", error=error, **data)

    def seal(self, **data: Any) -> AgentTelemetry:
        if self._sealed:
            return self.telemetry
        self.telemetry.duration_ms = round(self.elapsed_ms, 3)
        if self._enabled:
            if len(self.events) >= self._max_events:
                self.events.pop()
                self.telemetry.dropped_events += 1
            self.events.append(
                TelemetryEvent(
                    type="run_end",
                    elapsed_ms=self.elapsed_ms,
                    data={"duration_ms": self.telemetry.duration_ms, **data},
                )
            )
        self._sealed = True
        logger.info("agent_run_telemetry", **self.telemetry.to_dict())
        return self.telemetry
