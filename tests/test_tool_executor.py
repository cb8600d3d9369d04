from __future__ import annotations

import asyncio

import pytest

from architect.tools.base import FunctionTool, ToolCall
from architect.tools.cache import TtlCache
from architect.tools.executor import (
    EXECUTION_FAILED_ERROR,
    MISSING_PARAMETERS_ERROR,
    TOOL_NOT_FOUND_ERROR,
    ToolExecutor,
)
from architect.tools.registry import ToolRegistry

from tests.helpers.stubs import FakeClock


class CountingTool:
    def __init__(self, name: str, *, required: tuple[str, ...] = (), result=None, error: Exception | None = None):
        self.name = name
        self.description = f"{name} tool"
        self.parameters = {"type": "object", "properties": {}, "required": list(required)}
        self.invocations: list[dict] = []
        self._result = result if result is not None else {"ok": True}
        self._error = error

    async def execute(self, args: dict) -> dict:
        self.invocations.append(args)
        if self._error is not None:
            raise self._error
        return self._result


def _executor(clock: FakeClock | None = None, registry: ToolRegistry | None = None) -> ToolExecutor:
    cache: TtlCache = TtlCache(default_ttl=15.0, clock=clock or FakeClock())
    return ToolExecutor(cache=cache, cache_ttl_seconds=15.0, registry=registry)


@pytest.mark.asyncio
async def test_missing_required_parameters_skip_invocation() -> None:
    tool = CountingTool("delete_task", required=("task_id", "reason"))
    executor = _executor()

    result = await executor.execute_tool(tool, ToolCall(name="delete_task", parameters={"reason": None}), "user-1")

    assert result.success is False
    assert result.result == {"error": MISSING_PARAMETERS_ERROR, "missing": ["task_id", "reason"]}
    assert tool.invocations == []


@pytest.mark.asyncio
async def test_repeated_read_within_ttl_hits_cache() -> None:
    clock = FakeClock()
    tool = CountingTool("get_tasks")
    executor = _executor(clock)

    first = await executor.execute_tool(tool, ToolCall(name="get_tasks", parameters={"a": 1, "b": 2}), "user-1")
    second = await executor.execute_tool(tool, ToolCall(name="get_tasks", parameters={"b": 2, "a": 1}), "user-1")

    assert first.cached is False
    assert second.cached is True
    assert second.result == {"ok": True}
    assert len(tool.invocations) == 1

    clock.advance(16)
    third = await executor.execute_tool(tool, ToolCall(name="get_tasks", parameters={"a": 1, "b": 2}), "user-1")
    assert third.cached is False
    assert len(tool.invocations) == 2


@pytest.mark.asyncio
async def test_cache_is_scoped_per_user() -> None:
    tool = CountingTool("get_tasks")
    executor = _executor()

    await executor.execute_tool(tool, ToolCall(name="get_tasks"), "alice")
    await executor.execute_tool(tool, ToolCall(name="get_tasks"), "bob")

    assert len(tool.invocations) == 2


@pytest.mark.asyncio
async def test_write_tools_are_never_cached() -> None:
    tool = CountingTool("create_task")
    executor = _executor()

    await executor.execute_tool(tool, ToolCall(name="create_task", parameters={"title": "x"}), "user-1")
    second = await executor.execute_tool(tool, ToolCall(name="create_task", parameters={"title": "x"}), "user-1")

    assert second.cached is False
    assert len(tool.invocations) == 2


@pytest.mark.asyncio
async def test_error_shaped_results_are_not_cached() -> None:
    tool = CountingTool("get_tasks", result={"error": "backend unavailable"})
    executor = _executor()

    await executor.execute_tool(tool, ToolCall(name="get_tasks"), "user-1")
    await executor.execute_tool(tool, ToolCall(name="get_tasks"), "user-1")

    assert len(tool.invocations) == 2


@pytest.mark.asyncio
async def test_tool_exception_becomes_failed_result() -> None:
    tool = CountingTool("get_tasks", error=RuntimeError("database offline"))
    executor = _executor()

    result = await executor.execute_tool(tool, ToolCall(name="get_tasks"), "user-1")

    assert result.success is False
    assert result.error == "database offline"
    assert result.result == {"error": EXECUTION_FAILED_ERROR}


@pytest.mark.asyncio
async def test_sync_function_tools_are_supported() -> None:
    tool = FunctionTool(name="get_time", description="Current time", handler=lambda args: {"time": "noon"})
    executor = _executor()

    result = await executor.execute_tool(tool, ToolCall(name="get_time"), "user-1")

    assert result.success is True
    assert result.result == {"time": "noon"}


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed() -> None:
    tool = CountingTool("get_tasks", error=asyncio.CancelledError())
    executor = _executor()

    with pytest.raises(asyncio.CancelledError):
        await executor.execute_tool(tool, ToolCall(name="get_tasks"), "user-1")


@pytest.mark.asyncio
async def test_open_circuit_blocks_invocation() -> None:
    clock = FakeClock()
    tool = CountingTool("get_tasks", error=RuntimeError("boom"))
    registry = ToolRegistry([tool], clock=clock)
    registry.configure_circuit(threshold=2, reset_seconds=30)
    executor = _executor(clock, registry)

    await executor.execute_tool(tool, ToolCall(name="get_tasks", parameters={"n": 1}), "user-1")
    await executor.execute_tool(tool, ToolCall(name="get_tasks", parameters={"n": 2}), "user-1")
    blocked = await executor.execute_tool(tool, ToolCall(name="get_tasks", parameters={"n": 3}), "user-1")

    assert blocked.success is False
    assert "temporarily unavailable" in (blocked.error or "")
    assert len(tool.invocations) == 2


@pytest.mark.asyncio
async def test_parallel_execution_reports_unknown_tools() -> None:
    tasks = CountingTool("get_tasks", result={"tasks": []})
    projects = CountingTool("get_projects", result={"projects": []})
    executor = _executor()

    results = await executor.execute_tools_parallel(
        [ToolCall(name="get_tasks"), ToolCall(name="missing_tool"), ToolCall(name="get_projects")],
        [tasks, projects],
        "user-1",
    )

    assert [result.success for result in results] == [True, False, True]
    assert results[1].result == {"error": TOOL_NOT_FOUND_ERROR}


@pytest.mark.asyncio
async def test_sequential_execution_stops_at_first_failure() -> None:
    ok = CountingTool("get_tasks")
    broken = CountingTool("get_projects", error=RuntimeError("nope"))
    never = CountingTool("get_notes")
    executor = _executor()

    results = await executor.execute_tools_sequential(
        [ToolCall(name="get_tasks"), ToolCall(name="get_projects"), ToolCall(name="get_notes")],
        {"get_tasks": ok, "get_projects": broken, "get_notes": never},
        "user-1",
    )

    assert [result.success for result in results] == [True, False]
    assert never.invocations == []


@pytest.mark.asyncio
async def test_invalidate_user_drops_cached_reads() -> None:
    tool = CountingTool("get_tasks")
    executor = _executor()

    await executor.execute_tool(tool, ToolCall(name="get_tasks"), "user-1")
    assert executor.invalidate_user("user-1") == 1
    await executor.execute_tool(tool, ToolCall(name="get_tasks"), "user-1")

    assert len(tool.invocations) == 2
