"""Tool service — synchronous-looking conversation operations for an agent.

Learn: An orchestrating agent drives conversations with these tools as if
they were blocking function calls:

    result = await tools.initiate_contact(Channel.VOICE, "Deploy to prod?")
    result.response  # what the user said, or the fallback

Under the hood each call does the gateway operation, appends to the
registry, then parks on a registry rendezvous (wait_for_response or
wait_for_inbound). Webhook events resolve those waits.

Errors:
- unknown conversation → ConversationNotFoundError (404)
- ended conversation → ConversationEndedError (409)
- voice-only tool on a messaging conversation (or the reverse) →
  ChannelMismatchError (409)
- the user hung up mid-call → conversation ended, fallback result
"""

from typing import Optional

import structlog

from callbridge.gateway import Gateway, GatewayError
from callbridge.models import (
    Channel,
    Conversation,
    ConversationState,
    Direction,
    Role,
    new_id,
)
from callbridge.schemas.tools import ToolResult
from callbridge.services.conversation_registry import ConversationRegistry

logger = structlog.get_logger()

NO_RESPONSE = "No response - proceed with defaults"
DISCONNECTED = "User disconnected - proceed with defaults"


class ConversationNotFoundError(Exception):
    """Raised when a conversation id is not in the registry."""


class ConversationEndedError(Exception):
    """Raised when an operation targets an ended conversation."""


class ChannelMismatchError(Exception):
    """Raised when an operation does not apply to the conversation's channel."""


class ToolService:
    """The eight tool operations, backed by the registry's waits."""

    def __init__(
        self,
        registry: ConversationRegistry,
        gateway: Gateway,
        user_address: str,
        reply_timeout: float = 180.0,
        receive_timeout: float = 5.0,
    ):
        self.registry = registry
        self.gateway = gateway
        self.user_address = user_address
        self.reply_timeout = reply_timeout
        self.receive_timeout = receive_timeout

    # ─── Helpers ──────────────────────────────────────────

    def _live(self, conversation_id: str) -> Conversation:
        conversation = self.registry.get(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        if conversation.ended:
            raise ConversationEndedError(f"Conversation {conversation_id} has ended")
        return conversation

    def _live_voice(self, conversation_id: str) -> Conversation:
        conversation = self._live(conversation_id)
        if conversation.channel is not Channel.VOICE:
            raise ChannelMismatchError(f"Conversation {conversation_id} is not a voice call")
        return conversation

    async def _await_reply(
        self, conversation: Conversation, timeout: Optional[float]
    ) -> ToolResult:
        response = await self.registry.wait_for_response(
            conversation.id, timeout if timeout is not None else self.reply_timeout
        )
        return ToolResult(
            success=True,
            conversation_id=conversation.id,
            channel=conversation.channel,
            response=response if response is not None else NO_RESPONSE,
        )

    def _disconnected(self, conversation: Conversation, error: GatewayError) -> ToolResult:
        logger.info("tools.disconnected", conversation_id=conversation.id, error=str(error))
        self.registry.update_state(conversation.id, ConversationState.ENDED)
        return ToolResult(
            success=True,
            conversation_id=conversation.id,
            channel=conversation.channel,
            response=DISCONNECTED,
        )

    async def _deliver(
        self, conversation: Conversation, message: str, wait_for_reply: bool
    ) -> None:
        if conversation.channel is Channel.VOICE:
            await self.gateway.speak(conversation.correlation_id, message, wait_for_reply)
        else:
            await self.gateway.send(
                conversation.channel,
                conversation.counterpart or self.user_address,
                message,
            )

    # ─── Outbound ─────────────────────────────────────────

    async def initiate_contact(
        self,
        channel: Channel,
        message: str,
        wait_for_reply: bool = True,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """Call or message the user and (by default) wait for the reply.

        GatewayError propagates: there is no conversation to fall back on yet.
        """
        if channel is Channel.VOICE:
            correlation_id = await self.gateway.initiate(self.user_address, message)
        else:
            correlation_id = await self.gateway.send(channel, self.user_address, message)

        conversation = self.registry.create(
            new_id(),
            channel,
            Direction.OUTBOUND,
            correlation_id,
            {"to": self.user_address},
        )
        self.registry.add_message(conversation.id, Role.ASSISTANT, message)

        if not wait_for_reply:
            return ToolResult(
                success=True,
                conversation_id=conversation.id,
                channel=channel,
                message="Call placed" if channel is Channel.VOICE else "Message sent",
            )
        return await self._await_reply(conversation, timeout)

    async def send_on_channel(
        self,
        channel: Channel,
        message: str,
        wait_for_reply: bool = True,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        if not channel.is_messaging:
            raise ChannelMismatchError("send_on_channel only supports sms and whatsapp")
        return await self.initiate_contact(channel, message, wait_for_reply, timeout)

    async def continue_conversation(
        self, conversation_id: str, message: str, timeout: Optional[float] = None
    ) -> ToolResult:
        """Say something on a live call and wait for the answer."""
        conversation = self._live_voice(conversation_id)
        try:
            await self.gateway.speak(conversation.correlation_id, message, True)
        except GatewayError as e:
            return self._disconnected(conversation, e)
        self.registry.add_message(conversation_id, Role.ASSISTANT, message)
        return await self._await_reply(conversation, timeout)

    async def speak(self, conversation_id: str, message: str) -> ToolResult:
        conversation = self._live_voice(conversation_id)
        try:
            await self.gateway.speak(conversation.correlation_id, message, False)
        except GatewayError as e:
            return self._disconnected(conversation, e)
        self.registry.add_message(conversation_id, Role.ASSISTANT, message)
        return ToolResult(
            success=True,
            conversation_id=conversation_id,
            channel=conversation.channel,
            message="Message delivered",
        )

    async def end_conversation(
        self, conversation_id: str, message: Optional[str] = None
    ) -> ToolResult:
        """Say goodbye (optional), hang up, mark ended. Ending twice is fine."""
        conversation = self.registry.get(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

        if not conversation.ended:
            try:
                if message:
                    await self._deliver(conversation, message, False)
                    self.registry.add_message(conversation_id, Role.ASSISTANT, message)
                if conversation.channel is Channel.VOICE:
                    await self.gateway.hangup(conversation.correlation_id)
            except GatewayError as e:
                # Already gone on the provider side; ending it here is all that's left.
                logger.info("tools.end_gateway_error", conversation_id=conversation_id, error=str(e))
            self.registry.update_state(conversation_id, ConversationState.ENDED)

        return ToolResult(
            success=True,
            conversation_id=conversation_id,
            channel=conversation.channel,
            message="Conversation ended",
            duration_seconds=round(conversation.duration_seconds),
        )

    # ─── Inbound ──────────────────────────────────────────

    async def receive_inbound(
        self, channel: Optional[Channel] = None, timeout: Optional[float] = None
    ) -> ToolResult:
        """Claim the next inbound conversation where the user said something."""
        conversation = await self.registry.wait_for_inbound(
            timeout if timeout is not None else self.receive_timeout, channel
        )
        if conversation is None:
            return ToolResult(success=False, error="No inbound contact received within timeout")

        last = conversation.last_message
        self.registry.update_state(conversation.id, ConversationState.ACTIVE)
        logger.info("tools.inbound_claimed", conversation_id=conversation.id)
        return ToolResult(
            success=True,
            conversation_id=conversation.id,
            channel=conversation.channel,
            direction=conversation.direction.value,
            user_message=last.content if last else "",
        )

    async def reply_to_conversation(
        self,
        conversation_id: str,
        message: str,
        wait_for_reply: bool = True,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """Reply on whatever channel the conversation is on."""
        conversation = self._live(conversation_id)
        try:
            await self._deliver(conversation, message, wait_for_reply)
        except GatewayError as e:
            return self._disconnected(conversation, e)
        self.registry.add_message(conversation_id, Role.ASSISTANT, message)

        if not wait_for_reply:
            return ToolResult(
                success=True,
                conversation_id=conversation_id,
                channel=conversation.channel,
                message="Message sent",
            )
        return await self._await_reply(conversation, timeout)

    def conversation_history(self, conversation_id: str) -> Conversation:
        conversation = self.registry.get(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation
