from __future__ import annotations

import pytest

from architect.tools.base import FunctionTool
from architect.tools.exceptions import ToolNotFoundError
from architect.tools.registry import ToolRegistry

from tests.helpers.stubs import FakeClock


def _tool(name: str) -> FunctionTool:
    return FunctionTool(name=name, description=f"{name} tool", handler=lambda args: args)


def test_registry_normalizes_names() -> None:
    registry = ToolRegistry()
    tool = _tool("Get_Tasks")
    registry.register(tool)

    assert registry.get("get_tasks") is tool
    assert registry.get("  GET_TASKS ") is tool
    assert "get_tasks" in registry
    assert registry.list() == ["Get_Tasks"]


def test_registry_rejects_objects_without_tool_contract() -> None:
    registry = ToolRegistry()

    with pytest.raises(TypeError):
        registry.register(object())  # type: ignore[arg-type]


def test_require_raises_for_unknown_tool() -> None:
    registry = ToolRegistry([_tool("get_tasks")])

    with pytest.raises(ToolNotFoundError):
        registry.require("delete_task")


def test_definitions_are_sorted_by_name() -> None:
    registry = ToolRegistry([_tool("list_projects"), _tool("get_tasks")])

    assert [tool.name for tool in registry.definitions()] == ["get_tasks", "list_projects"]


def test_registry_circuit_breaker_recovers() -> None:
    clock = FakeClock()
    registry = ToolRegistry([_tool("get_tasks")], clock=clock)
    registry.configure_circuit(threshold=1, reset_seconds=5)

    assert registry.record_failure("get_tasks") is True
    assert registry.is_circuit_open("get_tasks") is True

    clock.advance(5)
    assert registry.is_circuit_open("get_tasks") is False
    registry.record_success("get_tasks")
    assert registry.failure_count("get_tasks") == 0


def test_unregister_forgets_circuit_state() -> None:
    registry = ToolRegistry([_tool("get_tasks")])
    registry.configure_circuit(threshold=1, reset_seconds=30)
    registry.record_failure("get_tasks")

    registry.unregister("get_tasks")

    assert "get_tasks" not in registry
    assert registry.is_circuit_open("get_tasks") is False
