"""
Orchestration Package

Components that drive a single agent turn:
- Plan generation and dependency-aware plan tracking
- Self reflection on step outcomes and completion verification
- Guardrails bounding duration, iterations and repeated tool batches
- Progress streaming and per-run telemetry
- The orchestrator state machine with its confirmation gate
"""

from .enums import (
    ActionStatus,
    ActionType,
    GuardrailKind,
    NextAction,
    PlanStatus,
    ProgressEventType,
    StepStatus,
    TurnPhase,
)
from .guardrails import GuardrailTrip, TurnGuardrails
from .models import (
    AgentAction,
    ExecutionPlan,
    NonEmptyMessage,
    PlanStep,
    PlanSummary,
    ProgressEvent,
    ReflectionResult,
    VerificationResult,
)
from .orchestrator import AgentOrchestrator
from .planner import PlanGenerator, create_quick_plan, is_simple_conversational_query
from .reflection import SelfReflector
from .response import ExecutionResult, ResponseBuilder, ensure_non_empty_message
from .state import AgentStateManager
from .streaming import ProgressStreamer
from .telemetry import AgentTelemetry, TelemetryRecorder
from .tracker import PlanTracker, PlanTransitionError
from .verification import CompletionVerifier

__all__ = [
    "ActionStatus",
    "ActionType",
    "AgentAction",
    "AgentOrchestrator",
    "AgentStateManager",
    "AgentTelemetry",
    "CompletionVerifier",
    "ExecutionPlan",
    "ExecutionResult",
    "GuardrailKind",
    "GuardrailTrip",
    "NextAction",
    "NonEmptyMessage",
    "PlanGenerator",
    "PlanStatus",
    "PlanStep",
    "PlanSummary",
    "PlanTracker",
    "PlanTransitionError",
    "ProgressEvent",
    "ProgressEventType",
    "ProgressStreamer",
    "ReflectionResult",
    "ResponseBuilder",
    "SelfReflector",
    "StepStatus",
    "TelemetryRecorder",
    "TurnGuardrails",
    "TurnPhase",
    "VerificationResult",
    "create_quick_plan",
    "ensure_non_empty_message",
    "is_simple_conversational_query",
]
