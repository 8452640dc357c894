"""CLI tests.

Learn: The CLI only talks HTTP, so _client is swapped for an httpx client
on a MockTransport that answers with canned JSON. The tests are sync:
CliRunner runs each command's coroutine with asyncio.run.
"""

import httpx
import pytest
from click.testing import CliRunner

from callbridge.cli import main as cli


def _mock(monkeypatch, handler):
    monkeypatch.setattr(
        cli,
        "_client",
        lambda: httpx.AsyncClient(base_url="http://cb.test", transport=httpx.MockTransport(handler)),
    )


def test_adapters_lists_claude_code():
    result = CliRunner().invoke(cli.main, ["adapters"])
    assert result.exit_code == 0
    assert "claude_code" in result.output


def test_version():
    result = CliRunner().invoke(cli.main, ["--version"])
    assert "0.1.0" in result.output


def test_status_prints_health(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/health"
        return httpx.Response(200, json={
            "status": "healthy",
            "server": "ok",
            "version": "0.1.0",
            "adapter": "claude_code",
            "worker_binary": "ok",
            "active_conversations": 2,
            "running_workers": 1,
            "dispatch": {"spawned": 3, "ignored": 0},
            "chat": {"channel": "whatsapp", "processing": False, "pending": 0},
        })

    _mock(monkeypatch, handler)
    result = CliRunner().invoke(cli.main, ["status"])

    assert result.exit_code == 0
    assert "Live conversations: 2" in result.output
    assert "Chat (whatsapp): idle" in result.output
    assert "spawned" in result.output


def test_kill_reports_result(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/v1/tasks/t1/kill"
        return httpx.Response(200, json={"task_id": "t1", "killed": True})

    _mock(monkeypatch, handler)
    result = CliRunner().invoke(cli.main, ["kill", "t1"])
    assert result.exit_code == 0
    assert "Killed t1" in result.output


def test_http_error_exits_nonzero(monkeypatch):
    _mock(monkeypatch, lambda request: httpx.Response(404, json={"detail": "Task not found"}))
    result = CliRunner().invoke(cli.main, ["kill", "nope"])
    assert result.exit_code == 1


@pytest.mark.parametrize("flag", [[], ["--wait"]])
def test_send_posts_to_send_on_channel(monkeypatch, flag):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, json={"success": True, "conversation_id": "c1", "response": None})

    _mock(monkeypatch, handler)
    result = CliRunner().invoke(cli.main, ["send", "whatsapp", "deploy finished", *flag])

    assert result.exit_code == 0
    assert seen["path"] == "/api/v1/tools/send-on-channel"
    assert b'"channel":"whatsapp"' in seen["body"].replace(b" ", b"")
    assert "Sent (c1)" in result.output
