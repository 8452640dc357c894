"""Conversation registry — every voice call, SMS thread and WhatsApp thread.

Learn: The registry owns conversation records and their message history,
and exposes two rendezvous primitives on top of them:

- wait_for_inbound(): "give me the next conversation where the user said
  something" (optionally on one channel). Waiters form a pool and are
  matched first-compatible.
- wait_for_response(id): "give me the next thing the user says on this
  conversation". At most one per conversation id.

Both are resolved from add_message(), which is what the webhook handlers
call. Webhooks are delivered at-least-once and may race with registry
population, so an unknown conversation id is logged and ignored rather
than raised.

Once a conversation has ended, nothing it receives ever satisfies a
waiter, and its state never changes again.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog

from callbridge.models import (
    Channel,
    Conversation,
    ConversationState,
    Direction,
    Message,
    Role,
    new_id,
    utcnow,
)
from callbridge.services.rendezvous import Deferred

logger = structlog.get_logger()


@dataclass
class AppendResult:
    """What an add_message() call did besides appending."""

    recorded: bool = False
    resolved_response_wait: bool = False
    resolved_inbound_wait: bool = False


@dataclass
class _InboundWaiter:
    deferred: Deferred[Conversation]
    channel: Optional[Channel]

    def accepts(self, conversation: Conversation) -> bool:
        return self.channel is None or self.channel is conversation.channel


class ConversationRegistry:
    """In-memory conversation table plus the waiters hanging off it."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._inbound_waiters: list[_InboundWaiter] = []
        self._response_waiters: dict[str, Deferred[str]] = {}

    # ─── Records ──────────────────────────────────────────

    def create(
        self,
        id: str,
        channel: Channel,
        direction: Direction,
        correlation_id: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> Conversation:
        """Insert a new conversation. Voice starts ringing, messaging starts active."""
        conversation = Conversation(
            id=id,
            channel=channel,
            direction=direction,
            state=(
                ConversationState.RINGING
                if channel is Channel.VOICE
                else ConversationState.ACTIVE
            ),
            correlation_id=correlation_id,
            metadata={k: v for k, v in (metadata or {}).items() if v},
        )
        self._conversations[id] = conversation
        logger.info(
            "conversation.created",
            conversation_id=id,
            channel=channel.value,
            direction=direction.value,
            correlation_id=correlation_id,
        )
        return conversation

    def get(self, id: str) -> Optional[Conversation]:
        return self._conversations.get(id)

    def get_by_correlation_id(self, correlation_id: str) -> Optional[Conversation]:
        for conversation in self._conversations.values():
            if conversation.correlation_id == correlation_id:
                return conversation
        return None

    def find_or_create(
        self,
        channel: Channel,
        correlation_id: str,
        sender: str,
        recipient: str,
    ) -> Conversation:
        """Thread continuity for messaging: one live conversation per sender.

        A reply to an outbound message lands on the outbound conversation
        only while a tool is waiting for it there. Otherwise it joins the
        sender's inbound thread, where receive_inbound can see it. Newest
        match wins.
        """
        if channel.is_messaging:
            for conversation in reversed(list(self._conversations.values())):
                if (
                    conversation.channel is not channel
                    or conversation.ended
                    or conversation.counterpart != sender
                ):
                    continue
                if (
                    conversation.direction is Direction.INBOUND
                    or self.has_response_waiter(conversation.id)
                ):
                    return conversation

        return self.create(
            new_id(),
            channel,
            Direction.INBOUND,
            correlation_id,
            {"from": sender, "to": recipient},
        )

    def all(self) -> list[Conversation]:
        return list(self._conversations.values())

    def active(self, channel: Optional[Channel] = None) -> list[Conversation]:
        return [
            c
            for c in self._conversations.values()
            if not c.ended and (channel is None or c.channel is channel)
        ]

    # ─── Mutation ─────────────────────────────────────────

    def update_state(self, id: str, state: ConversationState) -> None:
        conversation = self._conversations.get(id)
        if not conversation:
            logger.warning("conversation.state_unknown_id", conversation_id=id, state=state.value)
            return

        if conversation.ended:
            if state is not ConversationState.ENDED:
                logger.info(
                    "conversation.state_after_end_ignored",
                    conversation_id=id,
                    state=state.value,
                )
            return

        conversation.state = state
        if state is ConversationState.ENDED:
            conversation.ended_at = utcnow()
            waiter = self._response_waiters.pop(id, None)
            if waiter:
                waiter.cancel()

        logger.info("conversation.state_updated", conversation_id=id, state=state.value)

    def add_message(self, id: str, role: Role, content: str) -> AppendResult:
        result = AppendResult()
        conversation = self._conversations.get(id)
        if not conversation:
            logger.warning("conversation.message_unknown_id", conversation_id=id, role=role.value)
            return result

        conversation.messages.append(Message(role=role, content=content))
        result.recorded = True
        logger.info(
            "conversation.message_added",
            conversation_id=id,
            channel=conversation.channel.value,
            role=role.value,
            preview=content[:50],
        )

        if role is not Role.USER or conversation.ended:
            return result

        waiter = self._response_waiters.pop(id, None)
        if waiter and waiter.resolve(content):
            result.resolved_response_wait = True

        if conversation.direction is Direction.INBOUND:
            conversation.state = ConversationState.PENDING_RESPONSE
            result.resolved_inbound_wait = self._notify_inbound_waiters(conversation)

        return result

    # ─── Rendezvous ───────────────────────────────────────

    def pending_inbound(self, channel: Optional[Channel] = None) -> Optional[Conversation]:
        """An inbound conversation with an unanswered user message, if any."""
        for conversation in self._conversations.values():
            if (
                conversation.direction is Direction.INBOUND
                and conversation.state is ConversationState.PENDING_RESPONSE
                and conversation.messages
                and (channel is None or conversation.channel is channel)
            ):
                return conversation
        return None

    async def wait_for_inbound(
        self, timeout: float, channel: Optional[Channel] = None
    ) -> Optional[Conversation]:
        pending = self.pending_inbound(channel)
        if pending:
            return pending

        waiter = _InboundWaiter(
            deferred=Deferred(timeout, on_settle=self._drop_inbound_waiter),
            channel=channel,
        )
        self._inbound_waiters.append(waiter)
        return await waiter.deferred.wait()

    async def wait_for_response(self, id: str, timeout: float) -> Optional[str]:
        conversation = self._conversations.get(id)
        if not conversation or conversation.ended:
            return None

        last = conversation.last_message
        if last and last.role is Role.USER:
            return last.content

        previous = self._response_waiters.pop(id, None)
        if previous:
            previous.cancel()

        deferred: Deferred[str] = Deferred(
            timeout, on_settle=lambda d: self._drop_response_waiter(id, d)
        )
        self._response_waiters[id] = deferred
        return await deferred.wait()

    def has_response_waiter(self, id: str) -> bool:
        waiter = self._response_waiters.get(id)
        return waiter is not None and not waiter.done

    def _notify_inbound_waiters(self, conversation: Conversation) -> bool:
        for waiter in list(self._inbound_waiters):
            if waiter.deferred.done or not waiter.accepts(conversation):
                continue
            self._inbound_waiters.remove(waiter)
            return waiter.deferred.resolve(conversation)
        return False

    def _drop_inbound_waiter(self, deferred: Deferred) -> None:
        self._inbound_waiters = [w for w in self._inbound_waiters if w.deferred is not deferred]

    def _drop_response_waiter(self, id: str, deferred: Deferred) -> None:
        if self._response_waiters.get(id) is deferred:
            del self._response_waiters[id]

    # ─── Housekeeping ─────────────────────────────────────

    def cleanup(self, max_age_seconds: float) -> int:
        """Discard ended conversations older than the retention window."""
        cutoff = utcnow() - timedelta(seconds=max_age_seconds)
        stale = [
            id
            for id, c in self._conversations.items()
            if c.ended and c.ended_at and c.ended_at < cutoff
        ]
        for id in stale:
            del self._conversations[id]
            logger.info("conversation.cleaned_up", conversation_id=id)
        return len(stale)

    def close(self) -> None:
        """Release every outstanding waiter with the no-response sentinel."""
        for waiter in list(self._inbound_waiters):
            waiter.deferred.cancel()
        for deferred in list(self._response_waiters.values()):
            deferred.cancel()
        self._inbound_waiters.clear()
        self._response_waiters.clear()
