"""Conversation admin API — read-only views of the registry."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge
from callbridge.models import Channel
from callbridge.schemas.conversation import ConversationRead, ConversationSummary

router = APIRouter()


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    channel: Optional[Channel] = Query(None, description="Filter by channel"),
    active: bool = Query(False, description="Only conversations that have not ended"),
    bridge: Bridge = Depends(get_bridge),
):
    """List conversations, newest first."""
    if active:
        conversations = bridge.registry.active(channel)
    else:
        conversations = [
            c for c in bridge.registry.all() if channel is None or c.channel is channel
        ]
    conversations = sorted(conversations, key=lambda c: c.started_at, reverse=True)
    return [ConversationSummary.model_validate(c) for c in conversations]


@router.get("/conversations/{conversation_id}", response_model=ConversationRead)
async def get_conversation(conversation_id: str, bridge: Bridge = Depends(get_bridge)):
    conversation = bridge.registry.get(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationRead.model_validate(conversation)
