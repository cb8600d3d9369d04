from __future__ import annotations

import httpx
import pytest

from architect import main
from architect.dependencies import get_orchestrator, get_tool_registry
from architect.orchestration.orchestrator import AgentOrchestrator

from tests.helpers.stubs import FakeClock, tool_reply

PREFIX = main.settings.api_v1_prefix


@pytest.fixture
def client_factory(store, registry, settings, oracle):
    orchestrator = AgentOrchestrator(
        store=store,
        registry=registry,
        settings=settings,
        llm_factory=oracle.factory,
        clock=FakeClock(),
    )

    async def _orchestrator() -> AgentOrchestrator:
        return orchestrator

    async def _registry():
        return registry

    main.app.dependency_overrides[get_orchestrator] = _orchestrator
    main.app.dependency_overrides[get_tool_registry] = _registry

    def _client() -> httpx.AsyncClient:
        transport = httpx.ASGITransport(app=main.app)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver", headers={"X-User-Id": "user-1"})

    yield _client
    main.app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_turn_endpoint_returns_message_and_telemetry(client_factory, oracle) -> None:
    oracle.queue("Hello! What can I do for you?")

    async with client_factory() as client:
        response = await client.post(f"{PREFIX}/agent/turns", json={"message": "hello", "session_id": "s1"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Hello! What can I do for you?"
    assert body["telemetry"]["llm_calls"] == 1
    assert body["events"][-1]["type"] == "run_end"


@pytest.mark.asyncio
async def test_turn_endpoint_rejects_empty_messages(client_factory) -> None:
    async with client_factory() as client:
        response = await client.post(f"{PREFIX}/agent/turns", json={"message": "", "session_id": "s1"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_stream_endpoint_emits_progress_then_result(client_factory, oracle) -> None:
    oracle.queue("Hi there.")

    async with client_factory() as client:
        response = await client.post(f"{PREFIX}/agent/turns/stream", json={"message": "hey", "session_id": "s1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    text = response.text
    assert "event: complete" in text
    assert "event: result" in text
    assert text.index("event: complete") < text.index("event: result")
    assert '"message": "Hi there."' in text


@pytest.mark.asyncio
async def test_pending_action_is_confirmed_over_http(client_factory, oracle, task_calls) -> None:
    oracle.queue(tool_reply(("delete_task", {"task_id": 5})))

    async with client_factory() as client:
        turn = await client.post(f"{PREFIX}/agent/turns", json={"message": "hey", "session_id": "s1"})
        [pending] = turn.json()["pending_actions"]
        assert task_calls == []

        confirmed = await client.post(
            f"{PREFIX}/agent/actions/confirm",
            json={"session_id": "s1", "action": pending},
        )
        repeated = await client.post(
            f"{PREFIX}/agent/actions/confirm",
            json={"session_id": "s1", "action": pending},
        )

    assert confirmed.status_code == 200
    [executed] = confirmed.json()["actions"]
    assert executed["status"] == "executed"
    assert executed["data"]["confirmed_action_id"] == pending["id"]
    assert task_calls == [{"tool": "delete_task", "task_id": 5}]
    assert repeated.json()["success"] is False


@pytest.mark.asyncio
async def test_tools_endpoint_flags_confirmation_gated_tools(client_factory) -> None:
    async with client_factory() as client:
        response = await client.get(f"{PREFIX}/agent/tools")

    assert response.status_code == 200
    tools = {tool["name"]: tool for tool in response.json()}
    assert tools["delete_task"]["requires_confirmation"] is True
    assert tools["delete_task"]["required"] == ["task_id"]
    assert tools["get_tasks"]["requires_confirmation"] is False


@pytest.mark.asyncio
async def test_health_root_and_metrics(client_factory, oracle) -> None:
    oracle.queue("Sure.")

    async with client_factory() as client:
        health = await client.get(f"{PREFIX}/health")
        root = await client.get("/")
        await client.post(f"{PREFIX}/agent/turns", json={"message": "ok", "session_id": "s2"})
        metrics = await client.get("/metrics")

    assert health.json() == {"status": "ok"}
    assert root.json() == {"message": f"{main.settings.app_name} running"}
    assert metrics.status_code == 200
    assert "architect_turns_total" in metrics.text
