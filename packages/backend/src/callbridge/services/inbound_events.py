"""Inbound event service — applies normalized gateway events.

Learn: The relay delivers five event types. Call lifecycle events only move
conversation state; speech and message events append a user message and
then run the dispatch policy.

    call.started  → create the voice conversation (once per correlation id)
                    and start a fresh chat session
    call.answered → ringing → active
    call.ended    → ended (releases any response wait with no answer)
    speech        → user message on the call with that correlation id
    message       → user message on the sender's SMS / WhatsApp thread

Events for a correlation id we do not know are logged and ignored. Webhook
delivery is at-least-once and can race our own bookkeeping.
"""

from typing import Optional

import structlog

from callbridge.dispatcher import InboundDispatcher
from callbridge.models import Channel, ConversationState, Direction, Role, new_id
from callbridge.schemas.events import EventResponse, EventType, InboundEvent
from callbridge.services.chat_queue import ChatQueue
from callbridge.services.conversation_registry import ConversationRegistry

logger = structlog.get_logger()


class InboundEventService:
    def __init__(
        self,
        registry: ConversationRegistry,
        dispatcher: InboundDispatcher,
        chat_queue: Optional[ChatQueue] = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.chat_queue = chat_queue

    def handle(self, event: InboundEvent) -> EventResponse:
        logger.info(
            "event.received",
            type=event.type.value,
            channel=event.channel.value,
            correlation_id=event.correlation_id,
        )
        if event.type is EventType.CALL_STARTED:
            return self._call_started(event)
        if event.type is EventType.MESSAGE:
            return self._message(event)

        conversation = self.registry.get_by_correlation_id(event.correlation_id)
        if not conversation:
            logger.warning(
                "event.unknown_correlation_id",
                type=event.type.value,
                correlation_id=event.correlation_id,
            )
            return EventResponse(handled=False, outcome="ignored")

        if event.type is EventType.CALL_ANSWERED:
            if conversation.state is ConversationState.RINGING:
                self.registry.update_state(conversation.id, ConversationState.ACTIVE)
            return EventResponse(handled=True, conversation_id=conversation.id)

        if event.type is EventType.CALL_ENDED:
            self.registry.update_state(conversation.id, ConversationState.ENDED)
            return EventResponse(handled=True, conversation_id=conversation.id)

        # speech
        if conversation.state is ConversationState.RINGING:
            self.registry.update_state(conversation.id, ConversationState.ACTIVE)
        return self._user_content(conversation, event.content)

    def _call_started(self, event: InboundEvent) -> EventResponse:
        existing = self.registry.get_by_correlation_id(event.correlation_id)
        if existing:
            logger.info(
                "event.duplicate_call_started",
                conversation_id=existing.id,
                correlation_id=event.correlation_id,
            )
            return EventResponse(handled=True, conversation_id=existing.id)

        conversation = self.registry.create(
            new_id(),
            Channel.VOICE,
            Direction.INBOUND,
            event.correlation_id,
            {"from": event.sender, "to": event.recipient},
        )
        if self.chat_queue:
            self.chat_queue.reset_for_voice_call()
        return EventResponse(handled=True, conversation_id=conversation.id)

    def _message(self, event: InboundEvent) -> EventResponse:
        if not event.channel.is_messaging:
            logger.warning("event.message_on_voice", correlation_id=event.correlation_id)
            return EventResponse(handled=False, outcome="ignored")

        conversation = self.registry.find_or_create(
            event.channel, event.correlation_id, event.sender, event.recipient
        )
        return self._user_content(conversation, event.content)

    def _user_content(self, conversation, content: str) -> EventResponse:
        if not content.strip():
            return EventResponse(handled=True, conversation_id=conversation.id, outcome="ignored")

        appended = self.registry.add_message(conversation.id, Role.USER, content)
        if conversation.ended:
            # Recorded for history; an ended conversation never reaches a consumer.
            return EventResponse(handled=True, conversation_id=conversation.id, outcome="ignored")

        outcome = self.dispatcher.dispatch(conversation, content, appended)
        return EventResponse(handled=True, conversation_id=conversation.id, outcome=outcome.value)
