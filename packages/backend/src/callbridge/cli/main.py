"""callbridge CLI — run the bridge and look inside a running one.

Usage:
    callbridge serve                              # Run the API server (uvicorn)
    callbridge status                             # Health, live conversations, workers
    callbridge conversations --active             # List conversations
    callbridge history <conversation_id>          # Full message history
    callbridge tasks                              # Worker executions
    callbridge kill <task_id>                     # Terminate a worker
    callbridge chat                               # Always-on chat session state
    callbridge reset-chat                         # Start a fresh chat session
    callbridge send whatsapp "deploy finished"    # Message the user
    callbridge adapters                           # Show available worker adapters
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3333"


def _api_url() -> str:
    return os.environ.get("CALLBRIDGE_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the callbridge server."""
    headers = {}
    api_key = os.environ.get("CALLBRIDGE_API_KEY")
    if api_key:
        headers["x-api-key"] = api_key
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Inside an already running loop (CliRunner under pytest-asyncio) the
    coroutine is offloaded to a thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


async def _get(path: str, **params):
    async with _client() as c:
        r = await c.get(path, params=params or None)
        _check(r)
        return r.json()


async def _post(path: str, body: Optional[dict] = None):
    async with _client() as c:
        r = await c.post(path, json=body or {})
        _check(r)
        return r.json()


def _check(r: httpx.Response) -> None:
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail", r.text)
        except ValueError:
            detail = r.text
        click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
        sys.exit(1)


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k) or "-")[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _status_color(status: str) -> str:
    colors = {
        "ringing": "cyan",
        "active": "green",
        "pending_response": "yellow",
        "ended": "white",
        "running": "yellow",
        "completed": "green",
        "failed": "red",
        "healthy": "green",
        "degraded": "yellow",
    }
    return colors.get(status, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="callbridge")
def main():
    """callbridge — phone, SMS and WhatsApp bridge for coding-agent workers."""


# ---------------------------------------------------------------------------
# callbridge serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: CALLBRIDGE_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: CALLBRIDGE_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes (development)")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    from callbridge.config import settings

    uvicorn.run(
        "callbridge.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="debug" if settings.debug else "info",
    )


# ---------------------------------------------------------------------------
# callbridge status
# ---------------------------------------------------------------------------


@main.command()
def status():
    """Show server health, live conversations and running workers."""
    _run(_status_impl())


async def _status_impl():
    health = await _get("/api/v1/health")
    state = health.get("status", "unknown")
    click.secho(f"callbridge {health.get('version', '?')}", bold=True)
    click.echo(f"  Status:   {click.style(state, fg=_status_color(state))}")
    click.echo(f"  Adapter:  {health.get('adapter')} ({health.get('worker_binary')})")
    click.echo(f"  Live conversations: {health.get('active_conversations', 0)}")
    click.echo(f"  Running workers:    {health.get('running_workers', 0)}")

    chat = health.get("chat")
    if chat:
        busy = "processing" if chat["processing"] else "idle"
        click.echo(f"  Chat ({chat['channel']}): {busy}, {chat['pending']} queued")

    dispatch = health.get("dispatch") or {}
    if any(dispatch.values()):
        click.echo()
        click.secho("Dispatch outcomes:", bold=True)
        for outcome, count in dispatch.items():
            click.echo(f"  {outcome:20s} {count}")


# ---------------------------------------------------------------------------
# callbridge conversations / history
# ---------------------------------------------------------------------------


@main.command()
@click.option("--channel", type=click.Choice(["voice", "sms", "whatsapp"]), help="Filter by channel")
@click.option("--active", "active_only", is_flag=True, help="Only conversations that have not ended")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def conversations(channel: Optional[str], active_only: bool, as_json: bool):
    """List conversations, newest first."""
    _run(_conversations_impl(channel, active_only, as_json))


async def _conversations_impl(channel: Optional[str], active_only: bool, as_json: bool):
    params = {"active": str(active_only).lower()}
    if channel:
        params["channel"] = channel
    rows = await _get("/api/v1/conversations", **params)

    if as_json:
        click.echo(_pretty_json(rows))
        return
    if not rows:
        click.echo("No conversations.")
        return
    _print_table(rows, [
        ("ID", "id", 32),
        ("CHANNEL", "channel", 8),
        ("DIR", "direction", 8),
        ("STATE", "state", 16),
        ("WITH", "counterpart", 16),
        ("STARTED", "started_at", 19),
    ])


@main.command()
@click.argument("conversation_id")
def history(conversation_id: str):
    """Show the message history of one conversation."""
    _run(_history_impl(conversation_id))


async def _history_impl(conversation_id: str):
    conv = await _get(f"/api/v1/conversations/{conversation_id}")
    state = conv["state"]
    click.secho(f"{conv['channel']} {conv['direction']} with {conv.get('counterpart') or '?'}", bold=True)
    click.echo(
        f"  State: {click.style(state, fg=_status_color(state))}  "
        f"Duration: {conv['duration_seconds']:.0f}s"
    )
    click.echo()
    for m in conv["messages"]:
        who = click.style("User", fg="cyan") if m["role"] == "user" else click.style("Assistant", fg="green")
        click.echo(f"  [{m['timestamp'][11:19]}] {who}: {m['content']}")


# ---------------------------------------------------------------------------
# callbridge tasks / kill
# ---------------------------------------------------------------------------


@main.command()
@click.option("--running", "running_only", is_flag=True, help="Only running workers")
@click.option("--tail", is_flag=True, help="Show the last lines of each worker's output")
def tasks(running_only: bool, tail: bool):
    """List worker executions."""
    _run(_tasks_impl(running_only, tail))


async def _tasks_impl(running_only: bool, tail: bool):
    rows = await _get("/api/v1/tasks")
    if running_only:
        rows = [t for t in rows if t["status"] == "running"]
    if not rows:
        click.echo("No tasks.")
        return

    for t in rows:
        status_str = click.style(f"{t['status']:10s}", fg=_status_color(t["status"]))
        summary = t.get("completion_summary") or t.get("error") or ""
        click.echo(f"  {t['task_id'][:32]:32s}  {status_str}  {t['task'][:50]:50s}  {summary[:40]}")
        if tail and t.get("output_tail"):
            for line in t["output_tail"][-5:]:
                click.echo(f"      {line[:120]}")


@main.command()
@click.argument("task_id")
def kill(task_id: str):
    """Terminate a running worker."""
    result = _run(_post(f"/api/v1/tasks/{task_id}/kill"))
    if result["killed"]:
        click.secho(f"Killed {task_id}", fg="green")
    else:
        click.secho(f"{task_id} was not running", fg="yellow")


# ---------------------------------------------------------------------------
# callbridge chat / reset-chat
# ---------------------------------------------------------------------------


def _print_chat(chat: dict) -> None:
    if not chat["enabled"]:
        click.echo("Chat queue is disabled.")
        return
    busy = click.style("processing", fg="yellow") if chat["processing"] else click.style("idle", fg="green")
    click.secho(f"Chat on {chat['channel']}, session {chat['session_id'][:8]}", bold=True)
    click.echo(f"  State: {busy}, {chat['pending_count']} queued")
    if chat.get("carried_context"):
        click.echo("  Carried context:")
        for line in chat["carried_context"].splitlines():
            click.echo(f"    {line}")
    if chat["history"]:
        click.echo()
        for m in chat["history"][-10:]:
            who = "User" if m["role"] == "user" else "Assistant"
            click.echo(f"  {who}: {m['content'][:100]}")


@main.command()
def chat():
    """Show the always-on chat session."""
    _print_chat(_run(_get("/api/v1/chat")))


@main.command("reset-chat")
def reset_chat():
    """Start a fresh chat session."""
    chat_state = _run(_post("/api/v1/chat/reset"))
    click.secho("Chat session reset.", fg="green")
    _print_chat(chat_state)


# ---------------------------------------------------------------------------
# callbridge send
# ---------------------------------------------------------------------------


@main.command()
@click.argument("channel", type=click.Choice(["sms", "whatsapp"]))
@click.argument("message")
@click.option("--wait", "wait_for_reply", is_flag=True, help="Wait for the user's reply")
@click.option("--timeout", default=None, type=float, help="Reply timeout in seconds")
def send(channel: str, message: str, wait_for_reply: bool, timeout: Optional[float]):
    """Message the user on SMS or WhatsApp."""
    body = {"channel": channel, "message": message, "wait_for_reply": wait_for_reply}
    if timeout:
        body["timeout_seconds"] = timeout
    result = _run(_post("/api/v1/tools/send-on-channel", body))
    click.secho(f"Sent ({result['conversation_id']})", fg="green")
    if result.get("response"):
        click.echo(f"Reply: {result['response']}")


# ---------------------------------------------------------------------------
# callbridge adapters
# ---------------------------------------------------------------------------


@main.command()
def adapters():
    """Show available worker adapters and whether their binary is installed."""
    from callbridge.agent.adapters import get_adapter, list_adapters

    for name in list_adapters():
        ok, detail = get_adapter(name).validate_environment()
        mark = click.style("ok", fg="green") if ok else click.style("missing", fg="red")
        click.echo(f"  {name:15s} {mark}  {detail}")


if __name__ == "__main__":
    main()
