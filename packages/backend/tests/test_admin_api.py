"""Admin API tests — conversations, tasks and the chat session."""

import pytest

from conftest import BRIDGE_NUMBER, USER, settle


async def _call_with_request(client, correlation_id: str = "CA1", content: str = "build an app") -> str:
    r = await client.post(
        "/api/v1/events",
        json={"type": "call.started", "correlation_id": correlation_id, "from": USER, "to": BRIDGE_NUMBER},
    )
    conv_id = r.json()["conversation_id"]
    await client.post(
        "/api/v1/events",
        json={"type": "speech", "correlation_id": correlation_id, "content": content},
    )
    return conv_id


# ═══════════════════════════════════════════════════════════
# Conversations
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_conversations_filters(client):
    voice_id = await _call_with_request(client)
    await client.post(
        "/api/v1/events",
        json={"type": "message", "channel": "sms", "correlation_id": "sm-1", "from": USER, "content": "hi"},
    )
    await client.post("/api/v1/events", json={"type": "call.ended", "correlation_id": "CA1"})

    all_rows = (await client.get("/api/v1/conversations")).json()
    assert len(all_rows) == 2

    voice_rows = (await client.get("/api/v1/conversations", params={"channel": "voice"})).json()
    assert [r["id"] for r in voice_rows] == [voice_id]
    assert voice_rows[0]["counterpart"] == USER

    active_rows = (await client.get("/api/v1/conversations", params={"active": "true"})).json()
    assert [r["channel"] for r in active_rows] == ["sms"]


@pytest.mark.asyncio
async def test_get_conversation(client):
    conv_id = await _call_with_request(client)
    r = await client.get(f"/api/v1/conversations/{conv_id}")
    assert r.status_code == 200
    data = r.json()
    assert data["metadata"] == {"from": USER, "to": BRIDGE_NUMBER}
    assert data["messages"][0]["role"] == "user"

    r = await client.get("/api/v1/conversations/nope")
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Tasks
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_and_get_tasks(client):
    conv_id = await _call_with_request(client)
    await settle()

    rows = (await client.get("/api/v1/tasks")).json()
    assert [t["task_id"] for t in rows] == [conv_id]
    assert rows[0]["status"] == "running"
    assert rows[0]["task"] == "build an app"
    assert rows[0]["pid"] == 4242

    r = await client.get(f"/api/v1/tasks/{conv_id}")
    assert r.json()["task_id"] == conv_id

    r = await client.get("/api/v1/tasks/nope")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_kill_task(client, launcher):
    conv_id = await _call_with_request(client)
    await settle()

    r = await client.post(f"/api/v1/tasks/{conv_id}/kill")
    assert r.json() == {"task_id": conv_id, "killed": True}
    assert launcher.last.killed

    await settle()
    r = await client.post(f"/api/v1/tasks/{conv_id}/kill")
    assert r.json()["killed"] is False

    r = await client.post("/api/v1/tasks/nope/kill")
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Chat
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_chat_state_and_reset(client):
    await client.post(
        "/api/v1/events",
        json={"type": "message", "channel": "whatsapp", "correlation_id": "wa-1", "from": USER, "content": "hey"},
    )

    data = (await client.get("/api/v1/chat")).json()
    assert data["enabled"] is True
    assert data["channel"] == "whatsapp"
    assert data["processing"] is True
    assert [m["content"] for m in data["history"]] == ["hey"]
    old_session = data["session_id"]

    data = (await client.post("/api/v1/chat/reset")).json()
    assert data["session_id"] != old_session
    assert data["history"] == []
    assert data["processing"] is False


@pytest.mark.asyncio
async def test_chat_disabled(tmp_path, gateway, launcher):
    from httpx import ASGITransport, AsyncClient

    from callbridge.main import create_app
    from conftest import make_settings

    app = create_app(make_settings(tmp_path, chat_enabled=False), gateway=gateway, launcher=launcher)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        assert (await ac.get("/api/v1/chat")).json()["enabled"] is False
        assert (await ac.post("/api/v1/chat/reset")).status_code == 404
    await app.state.bridge.shutdown()
