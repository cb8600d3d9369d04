from __future__ import annotations

import asyncio
import json
from contextlib import suppress
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..core.logging import get_logger
from ..dependencies import get_orchestrator, get_tool_registry, get_user_id
from ..orchestration.models import ProgressEvent
from ..orchestration.orchestrator import AgentOrchestrator
from ..orchestration.streaming import ProgressStreamer
from ..schemas.turns import ConfirmActionRequest, ToolDescriptor, TurnRequest, TurnResponse
from ..tools.registry import ToolRegistry

logger = get_logger(name=__name__)

router = APIRouter()

END_OF_STREAM = "__END__"


def _format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


@router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/agent/turns", response_model=TurnResponse, tags=["agent"])
async def create_turn(
    payload: TurnRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> TurnResponse:
    result = await orchestrator.process_message(
        payload.message,
        session_id=payload.session_id,
        user_id=user_id,
        max_steps=payload.max_steps,
        max_duration_seconds=payload.max_duration_seconds,
    )
    return TurnResponse.from_result(result)


@router.post("/agent/turns/stream", tags=["agent"])
async def create_turn_stream(
    payload: TurnRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    async def event_stream():
        queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()
        streamer = ProgressStreamer()

        async def progress(event: ProgressEvent) -> None:
            await queue.put((event.type.value, event.model_dump(mode="json")))

        streamer.subscribe(progress)

        async def runner() -> None:
            try:
                result = await orchestrator.process_message(
                    payload.message,
                    session_id=payload.session_id,
                    user_id=user_id,
                    streamer=streamer,
                    max_steps=payload.max_steps,
                    max_duration_seconds=payload.max_duration_seconds,
                )
                await queue.put(("result", TurnResponse.from_result(result).model_dump(mode="json")))
            except Exception as exc:
                logger.exception("agent_stream_failed", session_id=payload.session_id, error=str(exc))
                await queue.put(("error", {"error": str(exc)}))
            finally:
                streamer.clear()
                await queue.put((END_OF_STREAM, {}))

        runner_task = asyncio.create_task(runner())

        try:
            while True:
                event, data = await queue.get()
                if event == END_OF_STREAM:
                    break
                yield _format_sse(event, data)
        finally:
            if not runner_task.done():
                runner_task.cancel()
            with suppress(asyncio.CancelledError):
                await runner_task

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)


@router.post("/agent/actions/confirm", response_model=TurnResponse, tags=["agent"])
async def confirm_action(
    payload: ConfirmActionRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> TurnResponse:
    result = await orchestrator.process_action_confirmation(
        payload.action,
        session_id=payload.session_id,
        user_id=user_id,
    )
    return TurnResponse.from_result(result)


@router.get("/agent/tools", response_model=list[ToolDescriptor], tags=["agent"])
async def list_tools(
    registry: ToolRegistry = Depends(get_tool_registry),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> list[ToolDescriptor]:
    return [
        ToolDescriptor.from_tool(tool, requires_confirmation=orchestrator.executor.is_write(tool.name))
        for tool in registry.definitions()
    ]
