from __future__ import annotations

from architect.tools.base import ToolCall
from architect.tools.utils import (
    CIRCULAR_MARKER,
    create_tool_cache_key,
    dedupe_tool_calls,
    is_write_tool,
    normalize_tool_params,
    stable_stringify,
    tool_call_signature,
)


def test_stable_stringify_ignores_key_order() -> None:
    assert stable_stringify({"a": 1, "b": 2}) == stable_stringify({"b": 2, "a": 1})
    assert stable_stringify({"outer": {"y": [1, {"d": 1, "c": 2}], "x": None}}) == stable_stringify(
        {"outer": {"x": None, "y": [1, {"c": 2, "d": 1}]}}
    )


def test_stable_stringify_marks_self_references() -> None:
    payload: dict = {"name": "loop"}
    payload["self"] = payload

    assert CIRCULAR_MARKER in stable_stringify(payload)


def test_stable_stringify_keeps_shared_siblings() -> None:
    shared = {"id": 1}
    encoded = stable_stringify({"first": shared, "second": shared})

    assert CIRCULAR_MARKER not in encoded
    assert encoded.count('"id":1') == 2


def test_normalize_tool_params_rejects_non_mappings() -> None:
    assert normalize_tool_params(None) == {}
    assert normalize_tool_params(["a", "b"]) == {}
    assert normalize_tool_params({"status": "done"}) == {"status": "done"}


def test_write_classification_uses_prefixes() -> None:
    for name in ("create_task", "add_note", "log_time", "update_task", "bulk_create_tasks", "delete_task"):
        assert is_write_tool(name)
    for name in ("get_tasks", "list_projects", "search_notes"):
        assert not is_write_tool(name)
    assert is_write_tool("Archive_Task", ("archive",))


def test_cache_key_scopes_user_and_tool() -> None:
    key = create_tool_cache_key("user-1", "get_tasks", {"status": "done", "limit": 5})

    assert key.startswith("user-1:get_tasks:")
    assert key == create_tool_cache_key("user-1", "get_tasks", {"limit": 5, "status": "done"})
    assert key != create_tool_cache_key("user-2", "get_tasks", {"limit": 5, "status": "done"})


def test_dedupe_tool_calls_keeps_first_occurrence() -> None:
    calls = [
        ToolCall(name="get_tasks", parameters={"status": "done"}, id="a"),
        ToolCall(name="get_tasks", parameters={"status": "done"}, id="b"),
        ToolCall(name="get_tasks", parameters={"status": "to_do"}, id="c"),
    ]

    unique = dedupe_tool_calls(calls)

    assert [call.id for call in unique] == ["a", "c"]


def test_tool_call_signature_is_order_independent() -> None:
    first = [
        ToolCall(name="get_tasks", parameters={"a": 1, "b": 2}),
        ToolCall(name="get_projects", parameters={}),
    ]
    second = [
        ToolCall(name="get_projects", parameters={}),
        ToolCall(name="get_tasks", parameters={"b": 2, "a": 1}),
    ]

    assert tool_call_signature(first) == tool_call_signature(second)
    assert tool_call_signature(first) != tool_call_signature([ToolCall(name="get_tasks", parameters={"a": 1})])
