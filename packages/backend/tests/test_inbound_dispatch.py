"""Inbound dispatch policy tests.

Learn: Each test feeds events through the InboundEventService, exactly as
the /api/v1/events route does, and checks which of the four steps fired:
1. channel / inbound wait → RESOLVED_WAIT
2. open question → RESOLVED_QUESTION
3. worker running for this conversation → IGNORED
4. chat queue (its channel) or one-shot spawn → QUEUED / SPAWNED
"""

import asyncio

import pytest

from callbridge.agent.executor import TaskStatus
from callbridge.dispatcher import DispatchOutcome
from callbridge.models import Channel
from callbridge.schemas.events import EventType, InboundEvent

from conftest import BRIDGE_NUMBER, USER, settle


def _event(type: EventType, correlation_id: str, content: str = "", channel: Channel = Channel.VOICE):
    return InboundEvent(
        type=type,
        channel=channel,
        correlation_id=correlation_id,
        sender=USER,
        recipient=BRIDGE_NUMBER,
        content=content,
    )


def _start_call(bridge, correlation_id: str = "CA1") -> str:
    result = bridge.events.handle(_event(EventType.CALL_STARTED, correlation_id))
    return result.conversation_id


def _speech(bridge, content: str, correlation_id: str = "CA1"):
    return bridge.events.handle(_event(EventType.SPEECH, correlation_id, content))


def _message(bridge, content: str, channel: Channel = Channel.WHATSAPP, correlation_id: str = "m1"):
    return bridge.events.handle(_event(EventType.MESSAGE, correlation_id, content, channel))


# ═══════════════════════════════════════════════════════════
# Step 4 then step 3 — one worker per conversation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_voice_request_spawns_then_duplicate_is_dropped(bridge, launcher):
    conv_id = _start_call(bridge)

    first = _speech(bridge, "build an app")
    assert first.outcome == DispatchOutcome.SPAWNED.value
    assert bridge.executor.is_running(conv_id)
    await settle()

    second = _speech(bridge, "also add tests")
    assert second.outcome == DispatchOutcome.IGNORED.value
    assert len(launcher.processes) == 1

    conversation = bridge.registry.get(conv_id)
    assert [m.content for m in conversation.messages] == ["build an app", "also add tests"]


@pytest.mark.asyncio
async def test_spawned_worker_uses_default_working_dir(bridge, launcher, tmp_path):
    _start_call(bridge)
    _speech(bridge, "build an app")
    assert launcher.last.cwd == str(tmp_path)
    assert "You received a phone call" in launcher.last.prompt


@pytest.mark.asyncio
async def test_one_shot_is_seeded_with_latest_context(bridge, launcher):
    """An SMS after a finished voice task picks up that task's context."""
    conv_id = _start_call(bridge)
    _speech(bridge, "build a todo app")
    await settle()
    bridge.executor.record_completion(conv_id, "Created todo app")
    bridge.executor.get(conv_id).working_dir = "/work/todo"
    launcher.last.exit(0)
    await settle()

    result = _message(bridge, "add dark mode", channel=Channel.SMS)

    assert result.outcome == DispatchOutcome.SPAWNED.value
    assert launcher.last.cwd == "/work/todo"
    assert "Previous Task Context" in launcher.last.prompt
    assert "Created todo app" in launcher.last.prompt


@pytest.mark.asyncio
async def test_running_chat_turn_is_not_follow_up_context(bridge, launcher, tmp_path):
    _message(bridge, "what's the weather", channel=Channel.WHATSAPP)
    await settle()
    assert bridge.chat_queue.processing

    result = _message(bridge, "build a todo app", channel=Channel.SMS, correlation_id="sm-1")

    assert result.outcome == DispatchOutcome.SPAWNED.value
    assert "Previous Task Context" not in launcher.last.prompt
    assert "what's the weather" not in launcher.last.prompt
    assert launcher.last.cwd == str(tmp_path)


@pytest.mark.asyncio
async def test_chat_channel_message_goes_to_queue(bridge, launcher):
    result = _message(bridge, "hey", channel=Channel.WHATSAPP)
    assert result.outcome == DispatchOutcome.QUEUED.value
    assert bridge.chat_queue.processing
    assert bridge.executor.all()[0].task_id.startswith("chat-")


@pytest.mark.asyncio
async def test_chat_queue_serializes_whatsapp_messages(bridge, launcher):
    _message(bridge, "A")
    await settle()
    result = _message(bridge, "B", correlation_id="m2")

    # The whatsapp conversation has no worker of its own; the chat queue owns it.
    assert result.outcome == DispatchOutcome.QUEUED.value
    assert bridge.chat_queue.pending_count == 1
    assert len(launcher.processes) == 1


# ═══════════════════════════════════════════════════════════
# Steps 1 and 2 — synchronous waits win
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_channel_wait_takes_priority_over_chat_queue(bridge, launcher):
    waiter = asyncio.create_task(bridge.worker.wait_for_next_message(Channel.WHATSAPP, 5))
    await settle()

    result = _message(bridge, "the answer")

    assert result.outcome == DispatchOutcome.RESOLVED_WAIT.value
    response = await waiter
    assert response.received
    assert response.message == "the answer"
    assert not bridge.chat_queue.processing
    assert launcher.processes == []


@pytest.mark.asyncio
async def test_inbound_wait_resolved_by_append(bridge, launcher):
    receive = asyncio.create_task(bridge.tools.receive_inbound(Channel.SMS, timeout=5))
    await settle()

    result = _message(bridge, "hi from sms", channel=Channel.SMS)

    assert result.outcome == DispatchOutcome.RESOLVED_WAIT.value
    claimed = await receive
    assert claimed.conversation_id == result.conversation_id
    assert claimed.user_message == "hi from sms"
    assert launcher.processes == []


@pytest.mark.asyncio
async def test_worker_question_is_answered_not_dropped(bridge, launcher, gateway):
    """A running worker asks; the reply resolves the ask instead of being ignored."""
    conv_id = _start_call(bridge)
    _speech(bridge, "build an app")
    await settle()
    assert bridge.executor.is_running(conv_id)

    ask = asyncio.create_task(bridge.worker.ask(conv_id, "Which framework?"))
    await settle()
    assert gateway.spoken[-1] == ("CA1", "Which framework?", True)

    result = _speech(bridge, "React")

    assert result.outcome == DispatchOutcome.RESOLVED_QUESTION.value
    answer = await ask
    assert answer.response == "React"
    assert answer.user_on_call
    assert len(launcher.processes) == 1


@pytest.mark.asyncio
async def test_reply_to_outbound_send_resolves_response_wait(bridge, launcher):
    """A WhatsApp reply to a tool-initiated thread is not handed to the chat queue."""
    send = asyncio.create_task(bridge.tools.send_on_channel(Channel.WHATSAPP, "Ship it?", timeout=5))
    await settle()

    result = _message(bridge, "yes ship it")

    assert result.outcome == DispatchOutcome.RESOLVED_QUESTION.value
    assert (await send).response == "yes ship it"
    assert not bridge.chat_queue.processing


# ═══════════════════════════════════════════════════════════
# Event lifecycle
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_duplicate_call_started_creates_one_conversation(bridge):
    first = _start_call(bridge, "CA9")
    second = _start_call(bridge, "CA9")
    assert first == second
    assert len(bridge.registry.all()) == 1


@pytest.mark.asyncio
async def test_call_started_resets_chat_session(bridge):
    _message(bridge, "chatting")
    old_session = bridge.chat_queue.session_id

    _start_call(bridge)

    assert bridge.chat_queue.session_id != old_session
    assert len(bridge.chat_queue.history) == 0
    assert not bridge.chat_queue.processing


@pytest.mark.asyncio
async def test_speech_for_unknown_call_is_ignored(bridge, launcher):
    result = _speech(bridge, "hello?", correlation_id="CA-unknown")
    assert not result.handled
    assert result.outcome == "ignored"
    assert launcher.processes == []


@pytest.mark.asyncio
async def test_speech_after_call_ended_reaches_nobody(bridge, launcher):
    conv_id = _start_call(bridge)
    bridge.events.handle(_event(EventType.CALL_ENDED, "CA1"))

    result = _speech(bridge, "wait, one more thing")

    assert result.outcome == "ignored"
    assert launcher.processes == []
    assert bridge.registry.get(conv_id).ended


@pytest.mark.asyncio
async def test_call_answered_activates_ringing_call(bridge):
    conv_id = _start_call(bridge)
    bridge.events.handle(_event(EventType.CALL_ANSWERED, "CA1"))
    assert bridge.registry.get(conv_id).state.value == "active"


@pytest.mark.asyncio
async def test_finished_worker_no_longer_blocks_new_request(bridge, launcher):
    conv_id = _start_call(bridge)
    _speech(bridge, "build an app")
    await settle()
    launcher.last.exit(0)
    await settle()
    assert bridge.executor.get(conv_id).status is TaskStatus.COMPLETED

    result = _speech(bridge, "now deploy it")
    assert result.outcome == DispatchOutcome.SPAWNED.value
    assert len(launcher.processes) == 2
