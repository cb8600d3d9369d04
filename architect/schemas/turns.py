from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..orchestration.models import AgentAction, ExecutionPlan
from ..orchestration.response import ExecutionResult
from ..orchestration.telemetry import TelemetryEvent
from ..tools.base import ToolDefinition, required_fields


class TurnRequest(BaseModel):
    message: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    max_steps: int | None = Field(default=None, ge=1)
    max_duration_seconds: float | None = Field(default=None, gt=0.0)


class ConfirmActionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    action: AgentAction


class TelemetryModel(BaseModel):
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


class TurnResponse(BaseModel):
    success: bool
    message: str
    actions: list[AgentAction] = Field(default_factory=list)
    pending_actions: list[AgentAction] = Field(default_factory=list)
    plan: ExecutionPlan | None = None
    telemetry: TelemetryModel | None = None
    events: list[TelemetryEvent] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "TurnResponse":
        telemetry = TelemetryModel(**result.telemetry.to_dict()) if result.telemetry is not None else None
        return cls(
            success=result.success,
            message=str(result.message),
            actions=list(result.actions),
            pending_actions=result.pending_actions,
            plan=result.plan,
            telemetry=telemetry,
            events=list(result.events),
        )


class ToolDescriptor(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    requires_confirmation: bool = False

    @classmethod
    def from_tool(cls, tool: ToolDefinition, *, requires_confirmation: bool) -> "ToolDescriptor":
        return cls(
            name=tool.name,
            description=tool.description,
            parameters=dict(tool.parameters),
            required=list(required_fields(tool)),
            requires_confirmation=requires_confirmation,
        )


__all__ = [
    "ConfirmActionRequest",
    "TelemetryModel",
    "ToolDescriptor",
    "TurnRequest",
    "TurnResponse",
]
