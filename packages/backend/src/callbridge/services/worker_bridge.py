"""Worker bridge — the call-back surface spawned workers use to reach the user.

Learn: A worker is a separate process with no access to our memory. It
talks to the user by curling a handful of endpoints (see the prompts in
agent/adapters/claude_code.py). This service is what those endpoints run:

- ask: speak/send a question and block until the user answers (or not)
- say: speak without waiting
- complete: record a summary, tell the user — or call them back
- send: deliver an SMS / WhatsApp message to the user
- wait_for_next_message: block until the user's next message on a channel
- call: place a fresh outbound call

Two kinds of open request live here, both as Deferreds:
- pending questions, one per conversation id (ask)
- channel waits, a FIFO per channel (wait_for_next_message)

The inbound dispatcher resolves them when the user's reply arrives.
Timeouts and a vanished user are normal outcomes with a human-readable
fallback, never errors: the worker should carry on with sensible defaults.
"""

from typing import Optional

import structlog

from callbridge.agent.executor import TaskExecutor
from callbridge.gateway import Gateway, GatewayError
from callbridge.models import Channel, ConversationState, Direction, Role, new_id
from callbridge.schemas.worker import (
    AskResponse,
    CallResponse,
    CompleteResponse,
    SayResponse,
    SendResponse,
    StatusResponse,
    WaitResponse,
)
from callbridge.services.chat_queue import ChatQueue
from callbridge.services.conversation_registry import ConversationRegistry
from callbridge.services.rendezvous import Deferred

logger = structlog.get_logger()

NOT_ON_CALL = "[user not on call - proceed with your best judgment or use defaults]"
CALL_ENDED = "[call ended - proceed with your best judgment or use defaults]"


class UserAddressMissingError(Exception):
    """Raised when an operation needs the user's address and none is configured."""


class WorkerBridge:
    """Backs the /api/worker/* endpoints."""

    def __init__(
        self,
        registry: ConversationRegistry,
        executor: TaskExecutor,
        gateway: Gateway,
        user_address: str,
        ask_timeout: float = 60.0,
        chat_queue: Optional[ChatQueue] = None,
    ):
        self.registry = registry
        self.executor = executor
        self.gateway = gateway
        self.user_address = user_address
        self.ask_timeout = ask_timeout
        self.chat_queue = chat_queue
        self._questions: dict[str, Deferred[str]] = {}
        self._channel_waits: dict[Channel, list[Deferred[str]]] = {}

    # ─── ask / say ────────────────────────────────────────

    async def ask(self, conversation_id: str, message: str) -> AskResponse:
        """Put a question to the user and wait for the answer."""
        conversation = self.registry.get(conversation_id)
        if not conversation or conversation.ended:
            return AskResponse(response=NOT_ON_CALL, user_on_call=False)

        previous = self._questions.pop(conversation_id, None)
        if previous:
            previous.cancel()
        question: Deferred[str] = Deferred(
            self.ask_timeout,
            on_settle=lambda d: self._drop_question(conversation_id, d),
        )
        self._questions[conversation_id] = question

        try:
            if conversation.channel is Channel.VOICE:
                await self.gateway.speak(conversation.correlation_id, message, True)
            else:
                await self.gateway.send(
                    conversation.channel,
                    conversation.counterpart or self.user_address,
                    message,
                )
        except GatewayError as e:
            logger.info("worker.ask_failed", conversation_id=conversation_id, error=str(e))
            question.cancel()
            self.registry.update_state(conversation_id, ConversationState.ENDED)
            return AskResponse(response=CALL_ENDED, user_on_call=False)

        self.registry.add_message(conversation_id, Role.ASSISTANT, message)
        logger.info("worker.ask", conversation_id=conversation_id, question=message[:80])

        answer = await question.wait()
        if answer is None:
            return AskResponse(
                response=(
                    f"[no response within {self.ask_timeout:.0f}s - "
                    "user may have hung up, proceed with defaults]"
                ),
                user_on_call=True,
            )
        return AskResponse(response=answer, user_on_call=True)

    def has_pending_question(self, conversation_id: str) -> bool:
        question = self._questions.get(conversation_id)
        return question is not None and not question.done

    def resolve_question(self, conversation_id: str, answer: str) -> bool:
        """Deliver the user's reply to an open ask(). False if none is open."""
        question = self._questions.pop(conversation_id, None)
        if question and question.resolve(answer):
            logger.info("worker.question_resolved", conversation_id=conversation_id)
            return True
        return False

    def _drop_question(self, conversation_id: str, question: Deferred) -> None:
        if self._questions.get(conversation_id) is question:
            del self._questions[conversation_id]

    async def say(self, conversation_id: str, message: str) -> SayResponse:
        conversation = self.registry.get(conversation_id)
        if not conversation or conversation.ended:
            return SayResponse(success=True, delivered=False, reason="user not on call")

        try:
            if conversation.channel is Channel.VOICE:
                await self.gateway.speak(conversation.correlation_id, message, False)
            else:
                await self.gateway.send(
                    conversation.channel,
                    conversation.counterpart or self.user_address,
                    message,
                )
        except GatewayError as e:
            logger.info("worker.say_failed", conversation_id=conversation_id, error=str(e))
            self.registry.update_state(conversation_id, ConversationState.ENDED)
            return SayResponse(success=True, delivered=False, reason="call ended")

        self.registry.add_message(conversation_id, Role.ASSISTANT, message)
        return SayResponse(success=True, delivered=True)

    # ─── complete ─────────────────────────────────────────

    async def complete(self, conversation_id: str, summary: str) -> CompleteResponse:
        """Record the result and get it to the user one way or another.

        Learn: Order of attempts:
        1. live voice call → speak it (and listen for a follow-up)
        2. live messaging thread → send it there
        3. otherwise (or if 1/2 fail) → call the user back on a new
           conversation linked to this one, so a follow-up request on the
           callback gets this task's context.
        """
        self.executor.record_completion(conversation_id, summary)
        conversation = self.registry.get(conversation_id)

        if conversation and conversation.channel is Channel.VOICE:
            self._carry_into_chat(conversation_id, summary)

        if conversation and not conversation.ended:
            try:
                if conversation.channel is Channel.VOICE:
                    text = f"I've finished. {summary}. Is there anything else you'd like me to do?"
                    await self.gateway.speak(conversation.correlation_id, text, True)
                    self.registry.add_message(conversation_id, Role.ASSISTANT, text)
                    return CompleteResponse(delivered="spoken")

                text = f"Done: {summary}"
                await self.gateway.send(
                    conversation.channel,
                    conversation.counterpart or self.user_address,
                    text,
                )
                self.registry.add_message(conversation_id, Role.ASSISTANT, text)
                return CompleteResponse(delivered="sent")
            except GatewayError as e:
                logger.info(
                    "worker.complete_delivery_failed",
                    conversation_id=conversation_id,
                    error=str(e),
                )
                self.registry.update_state(conversation_id, ConversationState.ENDED)

        callback_id = new_id()
        self.executor.link_callback(callback_id, conversation_id)
        text = (
            "Hi, I finished the task you requested. "
            f"{summary}. Would you like me to do anything else?"
        )
        try:
            await self._place_call(callback_id, text)
        except (GatewayError, UserAddressMissingError) as e:
            logger.error("worker.callback_failed", conversation_id=conversation_id, error=str(e))
            return CompleteResponse(
                delivered="failed", error="Could not reach user", summary=summary
            )

        logger.info("worker.callback_placed", conversation_id=conversation_id, callback_id=callback_id)
        return CompleteResponse(
            delivered="callback",
            new_conversation_id=callback_id,
            original_conversation_id=conversation_id,
        )

    def _carry_into_chat(self, conversation_id: str, summary: str) -> None:
        if not self.chat_queue:
            return
        context = self.executor.get_context(conversation_id)
        if context:
            text = (
                f'Task: "{context.original_task}"\n'
                f'Result: "{summary}"\n'
                f"Working dir: {context.working_dir}"
            )
        else:
            text = f'Result: "{summary}"'
        self.chat_queue.set_voice_context(text)

    # ─── status / call ────────────────────────────────────

    def status(self, conversation_id: str) -> StatusResponse:
        conversation = self.registry.get(conversation_id)
        return StatusResponse(
            conversation_id=conversation_id,
            active=bool(conversation and not conversation.ended),
            state=conversation.state.value if conversation else "not_found",
        )

    async def call(self, message: str) -> CallResponse:
        conversation_id = new_id()
        await self._place_call(conversation_id, message)
        return CallResponse(conversation_id=conversation_id)

    async def _place_call(self, conversation_id: str, text: str) -> None:
        if not self.user_address:
            raise UserAddressMissingError("No user address configured (CALLBRIDGE_USER_ADDRESS)")
        correlation_id = await self.gateway.initiate(self.user_address, text)
        self.registry.create(
            conversation_id,
            Channel.VOICE,
            Direction.OUTBOUND,
            correlation_id,
            {"to": self.user_address},
        )
        self.registry.add_message(conversation_id, Role.ASSISTANT, text)

    # ─── messaging ────────────────────────────────────────

    async def send(self, channel: Channel, message: str) -> SendResponse:
        """Send a message to the user. GatewayError propagates to the caller."""
        if not channel.is_messaging:
            raise ValueError(f"Cannot send a message on channel '{channel.value}'")
        if not self.user_address:
            raise UserAddressMissingError("No user address configured (CALLBRIDGE_USER_ADDRESS)")

        message_id = await self.gateway.send(channel, self.user_address, message)
        logger.info("worker.sent", channel=channel.value, message_id=message_id)

        if self.chat_queue and self.chat_queue.channel is channel:
            self.chat_queue.record_assistant_message(message)
        for conversation in reversed(self.registry.active(channel)):
            if conversation.counterpart == self.user_address:
                self.registry.add_message(conversation.id, Role.ASSISTANT, message)
                break

        return SendResponse(success=True, message_id=message_id)

    async def wait_for_next_message(self, channel: Channel, timeout: float) -> WaitResponse:
        waits = self._channel_waits.setdefault(channel, [])
        deferred: Deferred[str] = Deferred(
            timeout, on_settle=lambda d: self._drop_channel_wait(channel, d)
        )
        waits.append(deferred)

        content = await deferred.wait()
        if content is None:
            return WaitResponse(received=False, reason="timeout")
        return WaitResponse(received=True, message=content)

    def has_pending_channel_wait(self, channel: Channel) -> bool:
        return any(not d.done for d in self._channel_waits.get(channel, []))

    def resolve_channel_wait(self, channel: Channel, content: str) -> bool:
        """Hand an inbound message to the oldest waiter on that channel."""
        waits = self._channel_waits.get(channel, [])
        while waits:
            deferred = waits.pop(0)
            if deferred.resolve(content):
                logger.info("worker.channel_wait_resolved", channel=channel.value)
                return True
        return False

    def _drop_channel_wait(self, channel: Channel, deferred: Deferred) -> None:
        waits = self._channel_waits.get(channel)
        if waits and deferred in waits:
            waits.remove(deferred)

    def close(self) -> None:
        """Release every open question and channel wait (shutdown)."""
        for question in list(self._questions.values()):
            question.cancel()
        for waits in list(self._channel_waits.values()):
            for deferred in list(waits):
                deferred.cancel()
        self._questions.clear()
        self._channel_waits.clear()
