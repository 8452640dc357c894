"""Tool-call API — blocking conversation operations for an orchestrating agent.

Learn: Every route maps one ToolService operation. Service exceptions
map to statuses here, the same way for every route:
- ConversationNotFoundError → 404
- ConversationEndedError, ChannelMismatchError → 409
- GatewayError (nothing to fall back on) → 502
"""

from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException

from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge
from callbridge.gateway import GatewayError
from callbridge.schemas.conversation import ConversationRead
from callbridge.schemas.tools import (
    ContinueConversationRequest,
    EndConversationRequest,
    InitiateContactRequest,
    ReceiveInboundRequest,
    ReplyToConversationRequest,
    SendOnChannelRequest,
    SpeakRequest,
    ToolResult,
)
from callbridge.services.tools import (
    ChannelMismatchError,
    ConversationEndedError,
    ConversationNotFoundError,
)

router = APIRouter(prefix="/tools")


@contextmanager
def _tool_errors():
    try:
        yield
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ConversationEndedError, ChannelMismatchError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=f"Gateway error: {e}")


# ─── Outbound ───────────────────────────────────────────


@router.post("/initiate-contact", response_model=ToolResult)
async def initiate_contact(body: InitiateContactRequest, bridge: Bridge = Depends(get_bridge)):
    """Call or message the user and wait for the reply."""
    if not bridge.settings.user_address:
        raise HTTPException(status_code=503, detail="No user address configured")
    with _tool_errors():
        return await bridge.tools.initiate_contact(
            body.channel, body.message, body.wait_for_reply, body.timeout_seconds
        )


@router.post("/continue-conversation", response_model=ToolResult)
async def continue_conversation(
    body: ContinueConversationRequest, bridge: Bridge = Depends(get_bridge)
):
    with _tool_errors():
        return await bridge.tools.continue_conversation(
            body.conversation_id, body.message, body.timeout_seconds
        )


@router.post("/speak", response_model=ToolResult)
async def speak(body: SpeakRequest, bridge: Bridge = Depends(get_bridge)):
    """Speak on a live call without waiting for a reply."""
    with _tool_errors():
        return await bridge.tools.speak(body.conversation_id, body.message)


@router.post("/end-conversation", response_model=ToolResult)
async def end_conversation(body: EndConversationRequest, bridge: Bridge = Depends(get_bridge)):
    with _tool_errors():
        return await bridge.tools.end_conversation(body.conversation_id, body.message)


@router.post("/send-on-channel", response_model=ToolResult)
async def send_on_channel(body: SendOnChannelRequest, bridge: Bridge = Depends(get_bridge)):
    """Start an SMS / WhatsApp thread with the user and wait for the reply."""
    if not bridge.settings.user_address:
        raise HTTPException(status_code=503, detail="No user address configured")
    with _tool_errors():
        return await bridge.tools.send_on_channel(
            body.channel, body.message, body.wait_for_reply, body.timeout_seconds
        )


# ─── Inbound ────────────────────────────────────────────


@router.post("/receive-inbound", response_model=ToolResult)
async def receive_inbound(body: ReceiveInboundRequest, bridge: Bridge = Depends(get_bridge)):
    """Claim the next inbound conversation (optionally on one channel)."""
    return await bridge.tools.receive_inbound(body.channel, body.timeout_seconds)


@router.post("/reply-to-conversation", response_model=ToolResult)
async def reply_to_conversation(
    body: ReplyToConversationRequest, bridge: Bridge = Depends(get_bridge)
):
    with _tool_errors():
        return await bridge.tools.reply_to_conversation(
            body.conversation_id, body.message, body.wait_for_reply, body.timeout_seconds
        )


@router.get("/conversation-history/{conversation_id}", response_model=ConversationRead)
async def conversation_history(conversation_id: str, bridge: Bridge = Depends(get_bridge)):
    with _tool_errors():
        conversation = bridge.tools.conversation_history(conversation_id)
    return ConversationRead.model_validate(conversation)
