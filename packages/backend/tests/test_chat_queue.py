"""Always-on chat queue tests.

Learn: One worker at a time, FIFO behind it, history in every prompt,
and a full reset when a voice call starts.
"""

import pytest

from callbridge.agent.adapters import ClaudeCodeAdapter
from callbridge.agent.executor import TaskExecutor
from callbridge.models import Channel, Role
from callbridge.services.chat_queue import ChatQueue

from conftest import FakeLauncher, settle


def _queue(launcher: FakeLauncher, max_history: int = 50) -> ChatQueue:
    executor = TaskExecutor(ClaudeCodeAdapter(binary="claude-test"), "http://bridge.test", launcher=launcher)
    return ChatQueue(executor, "/work", channel=Channel.WHATSAPP, max_history=max_history)


@pytest.mark.asyncio
async def test_first_message_spawns_one_worker():
    launcher = FakeLauncher()
    chat = _queue(launcher)

    chat.handle_message("hello")

    assert chat.processing
    assert len(launcher.processes) == 1
    cmd = launcher.last.cmd
    assert "--session-id" not in cmd
    assert chat.executor.all()[0].task_id.startswith("chat-")


@pytest.mark.asyncio
async def test_messages_queue_behind_running_worker_fifo():
    launcher = FakeLauncher()
    chat = _queue(launcher)

    chat.handle_message("A")
    await settle()
    chat.handle_message("B")

    assert chat.pending_count == 1
    assert len(launcher.processes) == 1

    launcher.processes[0].exit(0)
    await settle()

    assert chat.pending_count == 0
    assert chat.processing
    assert len(launcher.processes) == 2
    assert "User: B" in launcher.last.prompt


@pytest.mark.asyncio
async def test_queued_message_prompt_excludes_later_messages():
    launcher = FakeLauncher()
    chat = _queue(launcher)

    chat.handle_message("A")
    await settle()
    chat.handle_message("B")
    chat.handle_message("C")
    assert chat.pending_count == 2

    launcher.processes[0].exit(0)
    await settle()

    prompt = launcher.last.prompt
    assert "User: A" in prompt
    assert "User: B" in prompt
    assert "User: C" not in prompt

    launcher.last.exit(0)
    await settle()
    prompt = launcher.last.prompt
    assert prompt.index("User: A") < prompt.index("User: B") < prompt.index("User: C")


@pytest.mark.asyncio
async def test_processing_clears_when_queue_drains():
    launcher = FakeLauncher()
    chat = _queue(launcher)
    chat.handle_message("A")
    await settle()
    launcher.last.exit(0)
    await settle()
    assert not chat.processing


@pytest.mark.asyncio
async def test_prompt_carries_history_but_not_the_new_message_twice():
    launcher = FakeLauncher()
    chat = _queue(launcher)

    chat.handle_message("what's in the repo?")
    await settle()
    chat.record_assistant_message("A todo app.")
    launcher.last.exit(0)
    await settle()

    chat.handle_message("add dark mode")
    prompt = launcher.last.prompt

    assert "## Conversation History" in prompt
    assert "User: what's in the repo?" in prompt
    assert "Assistant: A todo app." in prompt
    assert prompt.count("add dark mode") == 1
    assert f"Session: {chat.session_id}" in prompt
    assert "/api/worker/send/whatsapp" in prompt
    assert "Work in directory: /work" in prompt


@pytest.mark.asyncio
async def test_history_is_capped():
    launcher = FakeLauncher()
    chat = _queue(launcher, max_history=3)
    for i in range(5):
        chat.record_assistant_message(f"m{i}")
    assert [m.content for m in chat.history] == ["m2", "m3", "m4"]


@pytest.mark.asyncio
async def test_voice_context_appears_in_prompt():
    launcher = FakeLauncher()
    chat = _queue(launcher)
    chat.set_voice_context('Task: "build X"\nResult: "built X"')
    chat.handle_message("how did it go?")
    assert "## Voice Call Context" in launcher.last.prompt
    assert 'Result: "built X"' in launcher.last.prompt


@pytest.mark.asyncio
async def test_reset_for_voice_call_clears_everything():
    launcher = FakeLauncher()
    chat = _queue(launcher)
    chat.handle_message("A")
    await settle()
    chat.handle_message("B")
    chat.set_voice_context("ctx")
    old_session = chat.session_id
    assert len(chat.history) == 2
    assert chat.pending_count == 1

    chat.reset_for_voice_call()

    assert len(chat.history) == 0
    assert chat.pending_count == 0
    assert not chat.processing
    assert chat.carried_context is None
    assert chat.session_id != old_session


@pytest.mark.asyncio
async def test_stale_worker_exit_does_not_touch_new_session():
    launcher = FakeLauncher()
    chat = _queue(launcher)
    chat.handle_message("old session")
    await settle()

    chat.reset_for_voice_call()
    chat.handle_message("new session")
    await settle()
    chat.handle_message("queued in new session")
    assert chat.pending_count == 1

    launcher.processes[0].exit(0)  # worker from before the reset
    await settle()

    assert chat.processing
    assert chat.pending_count == 1
    assert len(launcher.processes) == 2


@pytest.mark.asyncio
async def test_history_roles():
    chat = _queue(FakeLauncher())
    chat.handle_message("hi")
    chat.record_assistant_message("hello")
    assert [m.role for m in chat.history] == [Role.USER, Role.ASSISTANT]
