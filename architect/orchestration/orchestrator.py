from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Sequence
from uuid import uuid4

import httpx

from ..core import metrics
from ..core.config import AgentRuntimeSettings, LLMSettings, Settings, get_settings
from ..core.logging import get_logger
from ..services.conversation import ConversationStore
from ..services.llm import InstrumentationHook, LLMClient, LLMError
from ..services.messages import ChatMessage, LLMResponse
from ..tools.base import ToolCall, ToolDefinition, ToolExecutionResult
from ..tools.cache import TtlCache
from ..tools.executor import ToolExecutor
from ..tools.registry import ToolRegistry
from ..tools.utils import dedupe_tool_calls, normalize_tool_params
from .enums import ActionStatus, ActionType, NextAction, StepStatus, TurnPhase
from .guardrails import GuardrailTrip, TurnGuardrails
from .models import AgentAction, ExecutionPlan, PlanStep
from .planner import OracleCall, PlanGenerator, is_simple_conversational_query
from .prompts import build_summary_prompt, build_system_prompt
from .reflection import SelfReflector
from .response import ExecutionResult, ResponseBuilder, ensure_non_empty_message
from .state import AgentStateManager
from .streaming import ProgressStreamer
from .telemetry import TelemetryRecorder
from .tracker import PlanTracker
from .verification import CompletionVerifier

logger = get_logger(name=__name__)

__all__ = ["AgentOrchestrator", "LLMClientFactory", "OracleClient"]

NOT_CONFIGURED_MESSAGE = "I need an API key to respond. Please configure your AI settings."
CONNECTIVITY_MESSAGE = "I'm having trouble connecting to the AI service."
TIMEOUT_MESSAGE = "The AI service took too long to respond. Please try again in a moment."
NETWORK_MESSAGE = "I couldn't reach the AI service. Please check your connection and try again."
EMPTY_REPLY_NUDGE = "Please provide a response or take an action."
CONFIRMATION_MESSAGE = "I've planned some actions that require your confirmation."
AWAITING_CONFIRMATION_REASON = "awaiting user confirmation"
ALREADY_HANDLED_MESSAGE = "This action has already been handled and can't be confirmed again."


class OracleClient(Protocol):
    async def call(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDefinition] | None = None,
    ) -> LLMResponse: ...


LLMClientFactory = Callable[[LLMSettings, AgentRuntimeSettings, Sequence[InstrumentationHook]], OracleClient]


@dataclass(slots=True)
class _Turn:
    request: str
    state: AgentStateManager
    telemetry: TelemetryRecorder
    streamer: ProgressStreamer
    guardrails: TurnGuardrails
    log: Any
    llm: OracleClient | None = None
    tools: list[ToolDefinition] = field(default_factory=list)
    phase: TurnPhase = TurnPhase.PLANNING


@dataclass(slots=True)
class _Outcome:
    success: bool
    message: str | None
    status: str


class AgentOrchestrator:
    """Runs one user turn through planning, plan execution, a react loop and summarizing.

    Every phase transition passes through ``TurnGuardrails``. Write-classified
    tool calls are never executed here: they become pending actions that
    only ``process_action_confirmation`` runs.
    """

    def __init__(
        self,
        *,
        store: ConversationStore,
        registry: ToolRegistry,
        settings: Settings | None = None,
        executor: ToolExecutor | None = None,
        llm_factory: LLMClientFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
        planner: PlanGenerator | None = None,
        reflector: SelfReflector | None = None,
        verifier: CompletionVerifier | None = None,
        response_builder: ResponseBuilder | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._registry = registry
        self._registry.configure_circuit(
            threshold=self._settings.tools.circuit_failure_threshold,
            reset_seconds=self._settings.tools.circuit_reset_seconds,
        )
        self._executor = executor or ToolExecutor.from_settings(self._settings.tools, registry=registry)
        self._http_client = http_client
        self._llm_factory = llm_factory or self._default_llm_factory
        self._planner = planner or PlanGenerator(max_steps=self._settings.runtime.max_steps)
        self._reflector = reflector or SelfReflector()
        self._verifier = verifier or CompletionVerifier()
        self._builder = response_builder or ResponseBuilder()
        self._clock = clock
        self._pending_actions: TtlCache[AgentAction] = TtlCache(
            max_size=self._settings.runtime.max_pending_actions,
            default_ttl=self._settings.runtime.pending_action_ttl_seconds,
            clock=clock,
        )

    @property
    def executor(self) -> ToolExecutor:
        return self._executor

    def _default_llm_factory(
        self,
        settings: LLMSettings,
        runtime: AgentRuntimeSettings,
        hooks: Sequence[InstrumentationHook],
    ) -> OracleClient:
        return LLMClient(settings, runtime, client=self._http_client, instrumentation_hooks=hooks)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def process_message(
        self,
        content: str,
        *,
        session_id: str,
        user_id: str,
        streamer: ProgressStreamer | None = None,
        max_steps: int | None = None,
        max_duration_seconds: float | None = None,
    ) -> ExecutionResult:
        runtime = self._settings.runtime
        started = self._clock()
        state = AgentStateManager(session_id=session_id, user_id=user_id)
        telemetry = TelemetryRecorder(
            state.run_id,
            max_events=runtime.max_events,
            enabled=runtime.telemetry_enabled,
        )
        turn = _Turn(
            request=content,
            state=state,
            telemetry=telemetry,
            streamer=streamer or ProgressStreamer(),
            guardrails=TurnGuardrails.from_settings(
                runtime,
                max_iterations=max_steps,
                max_duration_seconds=max_duration_seconds,
                clock=self._clock,
            ),
            log=logger.bind(run_id=state.run_id, session_id=session_id, user_id=user_id),
        )
        telemetry.record_event("run_start", session_id=session_id, user_id=user_id)
        turn.log.info("agent_turn_started", chars=len(content))

        try:
            outcome = await self._run_turn(turn)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            turn.log.exception("agent_turn_failed", error=str(exc))
            telemetry.record_error(str(exc), phase=turn.phase.value)
            await turn.streamer.stream_error(str(exc))
            outcome = _Outcome(success=False, message=f"I encountered an error: {exc}", status="error")

        turn.phase = TurnPhase.DONE
        result = self._builder.build_execution_result(
            success=outcome.success,
            base_message=outcome.message,
            actions=state.actions,
            plan=state.plan,
        )
        self._remember_pending(state, result.pending_actions)
        await self._persist_assistant_message(turn, result)
        result.telemetry = telemetry.seal(status=outcome.status)
        result.events = list(telemetry.events)
        await turn.streamer.stream_complete(
            str(result.message),
            success=result.success,
            status=outcome.status,
            pending_actions=len(result.pending_actions),
        )
        metrics.record_turn(entry_point="message", status=outcome.status, latency=self._clock() - started)
        turn.log.info("agent_turn_finished", status=outcome.status, actions=len(result.actions))
        return result

    async def process_action_confirmation(
        self,
        action: AgentAction,
        *,
        session_id: str,
        user_id: str,
        streamer: ProgressStreamer | None = None,
    ) -> ExecutionResult:
        """Execute exactly one previously proposed write action."""
        runtime = self._settings.runtime
        started = self._clock()
        streamer = streamer or ProgressStreamer()
        state = AgentStateManager(session_id=session_id, user_id=user_id)
        telemetry = TelemetryRecorder(state.run_id, max_events=runtime.max_events, enabled=runtime.telemetry_enabled)
        log = logger.bind(run_id=state.run_id, session_id=session_id, user_id=user_id, action_id=action.id)
        telemetry.record_event("run_start", session_id=session_id, user_id=user_id, action_id=action.id)

        outcome = await self._confirm(action, state, telemetry, log)

        result = self._builder.build_execution_result(
            success=outcome.success,
            base_message=outcome.message,
            actions=state.actions,
        )
        turn = _Turn(
            request="",
            state=state,
            telemetry=telemetry,
            streamer=streamer,
            guardrails=TurnGuardrails.from_settings(runtime, clock=self._clock),
            log=log,
            phase=TurnPhase.DONE,
        )
        await self._persist_assistant_message(turn, result)
        result.telemetry = telemetry.seal(status=outcome.status)
        result.events = list(telemetry.events)
        await streamer.stream_complete(str(result.message), success=result.success, status=outcome.status)
        metrics.record_turn(entry_point="confirmation", status=outcome.status, latency=self._clock() - started)
        return result

    # ------------------------------------------------------------------
    # Turn state machine
    # ------------------------------------------------------------------
    async def _run_turn(self, turn: _Turn) -> _Outcome:
        state = turn.state
        runtime = self._settings.runtime
        history = await self._store.get_messages(state.session_id, state.user_id)
        for message in history:
            if message.role in ("user", "assistant") and message.content:
                state.add_message(ChatMessage(role=message.role, content=message.content))
        user_message = ChatMessage.user(turn.request)
        state.add_message(user_message)
        await self._store.add_message(state.session_id, state.user_id, user_message, {"run_id": state.run_id})

        llm_settings = await self._store.get_settings(state.user_id) or self._settings.llm
        if not llm_settings.is_configured:
            turn.log.info("agent_llm_not_configured", provider=llm_settings.provider)
            return _Outcome(success=False, message=NOT_CONFIGURED_MESSAGE, status="not_configured")

        turn.tools = self._registry.definitions()
        state.set_system_prompt(build_system_prompt(turn.tools, llm_settings.system_prompt))
        removed = state.trim_to_token_budget(runtime.prompt_token_budget, min_messages=runtime.min_history_messages)
        if removed:
            turn.log.info("agent_history_trimmed", removed=removed)
        turn.llm = self._llm_factory(llm_settings, runtime, [turn.telemetry.instrumentation_hook])

        # Planning
        turn.phase = TurnPhase.PLANNING
        plan: ExecutionPlan | None = None
        if turn.tools and not is_simple_conversational_query(turn.request):
            try:
                plan = await self._planner.generate_plan(turn.request, turn.tools, self._oracle(turn, "plan"))
            except LLMError as exc:
                return await self._llm_failure(turn, exc)
        else:
            turn.log.debug("agent_planning_skipped", tools=len(turn.tools))

        tracker: PlanTracker | None = None
        if plan is not None and plan.steps:
            state.set_plan(plan)
            tracker = PlanTracker(plan)
            tracker.start()
            await turn.streamer.stream_plan_created(plan)
            turn.telemetry.record_event("plan_created", plan_id=plan.id, steps=len(plan.steps))

        # Plan execution
        if tracker is not None:
            turn.phase = TurnPhase.EXECUTING_PLAN_STEP
            while (step := tracker.get_next_step()) is not None:
                trip = turn.guardrails.check_budget(state.iteration)
                if trip is not None:
                    return self._guardrail_outcome(turn, trip)
                self._begin_iteration(turn)
                verdict = await self._execute_plan_step(turn, tracker, step)
                if verdict == "pending":
                    self._collect_pending_writes(turn, tracker)
                    turn.phase = TurnPhase.AWAITING_CONFIRMATION
                    return self._confirmation_outcome(turn, None)
                if verdict == "complete":
                    for remaining in tracker.plan.steps:
                        if remaining.status is StepStatus.PENDING:
                            tracker.skip_step(remaining.id, "goal already satisfied")
                    break
            if tracker.is_complete():
                if tracker.completed_count() == 0 and tracker.has_failures():
                    tracker.fail()
                else:
                    tracker.complete()

        # React loop
        final_message: str | None = None
        if self._needs_react(tracker):
            turn.phase = TurnPhase.REACT_TOOL_CALL
            if tracker is not None:
                state.add_message(ChatMessage.system(self._progress_note(tracker)))
            react = await self._react_loop(turn)
            if isinstance(react, _Outcome):
                return react
            final_message = react

        # Summarizing
        turn.phase = TurnPhase.SUMMARIZING
        message = final_message
        if not (message and message.strip()):
            message = await self._synthesize(turn)
        state.mark_complete()
        tool_actions = self._tool_actions(state.actions)
        success = not tool_actions or any(action.status is ActionStatus.EXECUTED for action in tool_actions)
        return _Outcome(success=success, message=message, status="completed")

    def _needs_react(self, tracker: PlanTracker | None) -> bool:
        if tracker is None:
            return True
        if not tracker.is_complete():
            return True
        return not any(step.tool_name and step.status is StepStatus.COMPLETED for step in tracker.plan.steps)

    async def _execute_plan_step(self, turn: _Turn, tracker: PlanTracker, step: PlanStep) -> str:
        """Run one ready step; returns ``continue``, ``complete`` or ``pending``."""
        number = tracker.step_number(step.id)
        total = tracker.total_count()

        if not step.tool_name:
            tracker.start_step(step.id)
            turn.state.set_current_step(step.id)
            await turn.streamer.stream_step_starting(step, number, total)
            await turn.streamer.stream_thinking(step.description)
            tracker.complete_step(step.id)
            turn.state.increment_steps_completed()
            await turn.streamer.stream_step_completed(step, number, total)
            return "continue"

        tool = self._registry.get(step.tool_name)
        call = ToolCall(name=step.tool_name, parameters=normalize_tool_params(step.parameters))
        if tool is not None and self._executor.is_write(tool.name):
            self._defer_write_step(turn, tracker, step, call)
            return "pending"

        tracker.start_step(step.id)
        turn.state.set_current_step(step.id)
        await turn.streamer.stream_step_starting(step, number, total)
        if tool is None:
            result = ToolExecutionResult(
                tool_name=step.tool_name,
                success=False,
                result={"error": "Tool not found"},
                error=f"Tool '{step.tool_name}' not found",
            )
            turn.state.add_action(self._read_action(call, result, step_id=step.id))
        else:
            result = await self._invoke_read(turn, tool, call, step_id=step.id)

        if result.success and not self._is_error_shaped(result.result):
            tracker.complete_step(step.id, result.result)
            turn.state.increment_steps_completed()
            await turn.streamer.stream_step_completed(step, number, total, result.result)
            reflection = await self._reflector.reflect_on_action_result(step, result, tracker.plan, self._oracle(turn, "reflect"))
            turn.log.debug("plan_step_reflection", step_id=step.id, verdict=reflection.next_action.value)
            return "complete" if reflection.next_action is NextAction.COMPLETE else "continue"

        error = result.error or "Step failed"
        await turn.streamer.stream_step_failed(step, number, total, error)
        reflection = await self._reflector.reflect_on_action_result(step, result, tracker.plan, self._oracle(turn, "reflect"))
        turn.log.info(
            "plan_step_failed",
            step_id=step.id,
            tool=step.tool_name,
            error=error,
            verdict=reflection.next_action.value,
        )
        await turn.streamer.stream_thinking(reflection.thoughts)

        if reflection.next_action is NextAction.RETRY and tool is not None:
            corrected = await self._corrected_parameters(turn, step, error, tool, reflection.corrections)
            if corrected is not None:
                step.parameters = corrected
                retry_call = ToolCall(name=tool.name, parameters=corrected)
                retry = await self._invoke_read(turn, tool, retry_call, step_id=step.id)
                if retry.success and not self._is_error_shaped(retry.result):
                    tracker.complete_step(step.id, retry.result)
                    turn.state.increment_steps_completed()
                    await turn.streamer.stream_step_completed(step, number, total, retry.result)
                    return "continue"
                error = retry.error or error
            tracker.fail_step(step.id, error)
            return "continue"
        if reflection.next_action is NextAction.SKIP:
            tracker.skip_step(step.id, reflection.thoughts)
            return "continue"
        tracker.fail_step(step.id, error)
        return "complete" if reflection.next_action is NextAction.COMPLETE else "continue"

    def _defer_write_step(self, turn: _Turn, tracker: PlanTracker, step: PlanStep, call: ToolCall) -> None:
        turn.state.add_action(self._pending_write_action(call, step_id=step.id))
        tracker.skip_step(step.id, AWAITING_CONFIRMATION_REASON)
        turn.telemetry.record_event("confirmation_required", tool=call.name, step_id=step.id)

    def _collect_pending_writes(self, turn: _Turn, tracker: PlanTracker) -> None:
        """Defer every other ready write step so one confirmation round covers the whole plan."""
        for step in tracker.plan.steps:
            if step.status is not StepStatus.PENDING or not step.tool_name:
                continue
            if not tracker.are_dependencies_met(step):
                continue
            tool = self._registry.get(step.tool_name)
            if tool is None or not self._executor.is_write(tool.name):
                continue
            call = ToolCall(name=tool.name, parameters=normalize_tool_params(step.parameters))
            self._defer_write_step(turn, tracker, step, call)

    async def _corrected_parameters(
        self,
        turn: _Turn,
        step: PlanStep,
        error: str,
        tool: ToolDefinition,
        corrections: Mapping[str, Any] | None,
    ) -> dict[str, Any] | None:
        if corrections:
            merged = {**normalize_tool_params(step.parameters), **dict(corrections)}
            if merged != normalize_tool_params(step.parameters):
                return merged
        return await self._reflector.suggest_parameter_correction(step, error, tool, self._oracle(turn, "correct"))

    async def _react_loop(self, turn: _Turn) -> str | _Outcome:
        """Direct tool-calling loop; returns the final reply or a terminal outcome."""
        state = turn.state
        runtime = self._settings.runtime
        react_iterations = 0
        nudges = 0
        while True:
            trip = turn.guardrails.check_budget(state.iteration) or turn.guardrails.check_react_budget(
                react_iterations, runtime.max_react_iterations
            )
            if trip is not None:
                return self._guardrail_outcome(turn, trip)
            self._begin_iteration(turn)
            react_iterations += 1

            try:
                response = await self._call_oracle_with_tools(turn, state.messages, "react")
            except LLMError as exc:
                return await self._llm_failure(turn, exc)

            if not response.tool_calls:
                content = (response.content or "").strip()
                if content:
                    state.add_message(ChatMessage.assistant(content))
                    return content
                if nudges < runtime.empty_reply_nudges:
                    nudges += 1
                    state.add_message(ChatMessage.user(EMPTY_REPLY_NUDGE))
                    continue
                return ""

            calls = dedupe_tool_calls(
                ToolCall(name=call.name, parameters=normalize_tool_params(call.parameters), id=call.id)
                for call in response.tool_calls
            )
            signature, trip = turn.guardrails.check_loop(calls, state.last_tool_signature)
            if trip is not None:
                return self._guardrail_outcome(turn, trip)
            state.set_last_tool_signature(signature)
            state.add_message(ChatMessage.assistant(response.content or "", calls))

            reads: list[tuple[ToolDefinition, ToolCall]] = []
            writes: list[ToolCall] = []
            for call in calls:
                tool = self._registry.get(call.name)
                if tool is None:
                    missing = ToolExecutionResult(
                        tool_name=call.name,
                        success=False,
                        result={"error": "Tool not found"},
                        error=f"Tool '{call.name}' not found",
                    )
                    state.add_action(self._read_action(call, missing))
                    state.add_message(self._tool_message(call, missing))
                elif self._executor.is_write(tool.name):
                    writes.append(call)
                else:
                    reads.append((tool, call))

            results = await asyncio.gather(*(self._invoke_read(turn, tool, call) for tool, call in reads))
            for (_, call), result in zip(reads, results):
                state.add_message(self._tool_message(call, result))

            if writes:
                for call in writes:
                    state.add_action(self._pending_write_action(call))
                    turn.telemetry.record_event("confirmation_required", tool=call.name, call_id=call.id)
                turn.phase = TurnPhase.AWAITING_CONFIRMATION
                return self._confirmation_outcome(turn, response.content)

    async def _synthesize(self, turn: _Turn) -> str | None:
        state = turn.state
        tool_actions = self._tool_actions(state.actions)
        fallback = self._verifier.verify_plan_complete(state.plan).message if state.plan is not None else None
        if not tool_actions:
            return fallback
        succeeded = [action for action in tool_actions if action.status is ActionStatus.EXECUTED]
        failed = [action for action in tool_actions if action.status is ActionStatus.FAILED]
        if not succeeded or len(failed) * 2 > len(tool_actions) or turn.llm is None:
            return fallback or self._verifier.generate_summary(state.plan)
        prompt = build_summary_prompt(turn.request, tool_actions, state.plan)
        try:
            summary = await self._oracle(turn, "summary")([ChatMessage.user(prompt)])
        except LLMError as exc:
            turn.log.warning("agent_summary_failed", code=exc.code, error=str(exc))
            turn.telemetry.record_error(str(exc), code=exc.code, phase="summary")
            return fallback or self._verifier.generate_summary(state.plan)
        return summary.strip() or fallback

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------
    async def _confirm(
        self,
        action: AgentAction,
        state: AgentStateManager,
        telemetry: TelemetryRecorder,
        log: Any,
    ) -> _Outcome:
        key = self._pending_key(state.user_id, state.session_id, action.id)
        issued = self._pending_actions.get(key)
        self._pending_actions.delete(key)
        if issued is None:
            log.info("confirmation_unknown_action")
            telemetry.record_event("confirmation_rejected", reason="unknown")
            return _Outcome(False, ALREADY_HANDLED_MESSAGE, "rejected")
        if action.type is not ActionType.WRITE or action.status is not ActionStatus.PENDING:
            log.info("confirmation_rejected", status=action.status.value, type=action.type.value)
            telemetry.record_event("confirmation_rejected", reason=action.status.value)
            return _Outcome(False, ALREADY_HANDLED_MESSAGE, "rejected")
        action = issued

        tool_name = action.tool_name
        tool = self._registry.get(tool_name) if tool_name else None
        if tool is None:
            failed = action.model_copy(
                update={
                    "id": f"action_{uuid4().hex[:12]}",
                    "status": ActionStatus.FAILED,
                    "data": {**action.data, "error": f"Tool '{tool_name}' not found"},
                }
            )
            state.add_action(failed)
            telemetry.record_error("tool_not_found", tool=tool_name)
            return _Outcome(False, f"I couldn't find the tool needed to {action.description}.", "failed")

        call_id = str(action.data.get("tool_call_id") or f"call_{uuid4().hex[:12]}")
        call = ToolCall(name=tool.name, parameters=action.parameters, id=call_id)
        telemetry.record_event("tool_call_start", tool=tool.name, call_id=call.id, confirmed=True)
        telemetry.record_tool_call()
        result = await self._executor.execute_tool(tool, call, state.user_id, use_cache=False)
        telemetry.record_event(
            "tool_call_end",
            tool=tool.name,
            call_id=call.id,
            success=result.success,
            duration_ms=round(result.duration_ms, 3),
        )

        data = {**action.data, "confirmed_action_id": action.id}
        if result.success:
            data["result"] = result.result
            invalidated = self._executor.invalidate_user(state.user_id)
            log.info("confirmed_action_executed", tool=tool.name, invalidated_cache_entries=invalidated)
        else:
            data["error"] = result.error
            telemetry.record_error(result.error or "tool_failed", tool=tool.name)
            log.warning("confirmed_action_failed", tool=tool.name, error=result.error)
        state.add_action(
            AgentAction(
                type=ActionType.WRITE,
                entity=action.entity,
                description=action.description,
                status=ActionStatus.EXECUTED if result.success else ActionStatus.FAILED,
                data=data,
            )
        )
        state.mark_complete()
        if result.success:
            return _Outcome(True, None, "completed")
        return _Outcome(False, f"I couldn't {action.description}: {result.error}", "failed")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _pending_key(user_id: str, session_id: str, action_id: str) -> str:
        return f"{user_id}:{session_id}:{action_id}"

    def _remember_pending(self, state: AgentStateManager, actions: Sequence[AgentAction]) -> None:
        for action in actions:
            self._pending_actions.set(self._pending_key(state.user_id, state.session_id, action.id), action)

    def _begin_iteration(self, turn: _Turn) -> None:
        iteration = turn.state.increment_iteration()
        turn.telemetry.record_event("iteration", iteration=iteration, phase=turn.phase.value)

    def _oracle(self, turn: _Turn, purpose: str) -> OracleCall:
        async def _call(messages: list[ChatMessage]) -> str:
            response = await self._call_oracle_with_tools(turn, messages, purpose, with_tools=False)
            return response.content

        return _call

    async def _call_oracle_with_tools(
        self,
        turn: _Turn,
        messages: Sequence[ChatMessage],
        purpose: str,
        *,
        with_tools: bool = True,
    ) -> LLMResponse:
        if turn.llm is None:
            raise RuntimeError("Oracle client is not initialised for this turn")
        start = self._clock()
        try:
            response = await turn.llm.call(messages, turn.tools if with_tools and turn.tools else None)
        except LLMError as exc:
            turn.telemetry.record_llm_call(messages)
            turn.telemetry.record_event(
                "llm_call",
                purpose=purpose,
                success=False,
                code=exc.code,
                duration_ms=round((self._clock() - start) * 1000, 3),
            )
            raise
        turn.telemetry.record_llm_call(messages, response.content)
        turn.telemetry.record_event(
            "llm_call",
            purpose=purpose,
            success=True,
            tool_calls=len(response.tool_calls),
            duration_ms=round((self._clock() - start) * 1000, 3),
        )
        return response

    async def _invoke_read(
        self,
        turn: _Turn,
        tool: ToolDefinition,
        call: ToolCall,
        *,
        step_id: str | None = None,
    ) -> ToolExecutionResult:
        turn.telemetry.record_event("tool_call_start", tool=tool.name, call_id=call.id, step_id=step_id)
        turn.telemetry.record_tool_call()
        result = await self._executor.execute_tool(tool, call, turn.state.user_id)
        turn.telemetry.record_event(
            "tool_call_end",
            tool=tool.name,
            call_id=call.id,
            success=result.success,
            cached=result.cached,
            duration_ms=round(result.duration_ms, 3),
        )
        if not result.success:
            turn.telemetry.record_error(result.error or "tool_failed", tool=tool.name)
        turn.state.add_action(self._read_action(call, result, step_id=step_id))
        return result

    def _read_action(self, call: ToolCall, result: ToolExecutionResult, *, step_id: str | None = None) -> AgentAction:
        data: dict[str, Any] = {"tool_name": call.name, "parameters": dict(call.parameters), "tool_call_id": call.id}
        if step_id:
            data["step_id"] = step_id
        if result.success:
            data["result"] = result.result
            data["cached"] = result.cached
        else:
            data["error"] = result.error
        return AgentAction(
            type=ActionType.READ,
            entity=self._entity_for(call.name),
            description=call.name.replace("_", " "),
            status=ActionStatus.EXECUTED if result.success else ActionStatus.FAILED,
            data=data,
        )

    def _pending_write_action(self, call: ToolCall, *, step_id: str | None = None) -> AgentAction:
        description = call.name.replace("_", " ")
        if call.name.lower().startswith("bulk"):
            count = next((len(value) for value in call.parameters.values() if isinstance(value, list)), None)
            if count is not None:
                description = f"{description} ({count} items)"
        data: dict[str, Any] = {"tool_name": call.name, "parameters": dict(call.parameters), "tool_call_id": call.id}
        if step_id:
            data["step_id"] = step_id
        return AgentAction(
            type=ActionType.WRITE,
            entity=self._entity_for(call.name),
            description=description,
            status=ActionStatus.PENDING,
            data=data,
        )

    @staticmethod
    def _entity_for(tool_name: str) -> str:
        parts = tool_name.split("_")
        if parts[0].lower() == "bulk":
            parts = parts[1:]
        return parts[1] if len(parts) > 1 and parts[1] else "data"

    @staticmethod
    def _tool_message(call: ToolCall, result: ToolExecutionResult) -> ChatMessage:
        if result.success:
            payload = result.result
        else:
            details = result.result if isinstance(result.result, Mapping) else {}
            payload = {**details, "error": result.error}
        return ChatMessage.tool(json.dumps(payload, default=str), tool_call_id=call.id, name=call.name)

    @staticmethod
    def _is_error_shaped(value: Any) -> bool:
        return isinstance(value, Mapping) and "error" in value

    @staticmethod
    def _tool_actions(actions: Sequence[AgentAction]) -> list[AgentAction]:
        return [
            action
            for action in actions
            if action.type in (ActionType.READ, ActionType.WRITE) and action.status is not ActionStatus.PENDING
        ]

    @staticmethod
    def _progress_note(tracker: PlanTracker) -> str:
        lines = [f"Progress on the plan '{tracker.plan.goal}':"]
        for step in tracker.plan.steps:
            lines.append(f"- [{step.status.value}] {step.description}")
        lines.append("Continue helping the user with what remains.")
        return "\n".join(lines)

    def _confirmation_outcome(self, turn: _Turn, content: str | None) -> _Outcome:
        pending = [action for action in turn.state.actions if action.status is ActionStatus.PENDING]
        if content and content.strip():
            message = content.strip()
        elif len(pending) == 1:
            message = f"I need your confirmation to {pending[0].description}."
        else:
            message = CONFIRMATION_MESSAGE
        turn.log.info("agent_awaiting_confirmation", pending=len(pending))
        return _Outcome(success=True, message=message, status="awaiting_confirmation")

    def _guardrail_outcome(self, turn: _Turn, trip: GuardrailTrip) -> _Outcome:
        turn.telemetry.record_event("guardrail", **trip.model_dump())
        state = turn.state
        progress = [action for action in self._tool_actions(state.actions) if action.status is ActionStatus.EXECUTED]
        message = trip.message
        if progress:
            message = f"{message}\n\n{ensure_non_empty_message(None, state.actions, state.plan, True)}"
        elif state.plan is not None:
            message = f"{message}\n\n{self._verifier.verify_plan_complete(state.plan).message}"
        return _Outcome(success=bool(progress), message=message, status=f"guardrail_{trip.kind.value}")

    async def _llm_failure(self, turn: _Turn, exc: LLMError) -> _Outcome:
        turn.log.warning("agent_llm_failure", code=exc.code, status=exc.status, error=str(exc))
        turn.telemetry.record_error(str(exc), code=exc.code, status=exc.status)
        await turn.streamer.stream_error(str(exc))
        if exc.code == "llm_timeout":
            message = TIMEOUT_MESSAGE
        elif exc.code == "llm_network_error":
            message = NETWORK_MESSAGE
        else:
            message = f"{CONNECTIVITY_MESSAGE} {exc}"
        return _Outcome(success=False, message=message, status=exc.code)

    async def _persist_assistant_message(self, turn: _Turn, result: ExecutionResult) -> None:
        metadata = {
            "run_id": turn.state.run_id,
            "success": result.success,
            "actions": [action.model_dump(mode="json") for action in result.actions],
            "plan_id": result.plan.id if result.plan is not None else None,
        }
        try:
            await self._store.add_message(
                turn.state.session_id,
                turn.state.user_id,
                ChatMessage.assistant(str(result.message)),
                metadata,
            )
        except Exception as exc:
            turn.log.exception("agent_persist_failed", error=str(exc))
            turn.telemetry.record_error(str(exc), phase="persist")
