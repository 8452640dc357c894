"""Chat admin API — inspect or reset the always-on chat session."""

from fastapi import APIRouter, Depends, HTTPException

from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge
from callbridge.schemas.task import ChatMessageRead, ChatRead

router = APIRouter()


def _read(bridge: Bridge) -> ChatRead:
    chat = bridge.chat_queue
    if not chat:
        return ChatRead(enabled=False)
    return ChatRead(
        enabled=True,
        channel=chat.channel.value,
        session_id=chat.session_id,
        processing=chat.processing,
        pending_count=chat.pending_count,
        carried_context=chat.carried_context,
        history=[ChatMessageRead.model_validate(m) for m in chat.history],
    )


@router.get("/chat", response_model=ChatRead)
async def get_chat(bridge: Bridge = Depends(get_bridge)):
    return _read(bridge)


@router.post("/chat/reset", response_model=ChatRead)
async def reset_chat(bridge: Bridge = Depends(get_bridge)):
    """Start a fresh chat session (same as a voice call starting)."""
    if not bridge.chat_queue:
        raise HTTPException(status_code=404, detail="Chat queue is disabled")
    bridge.chat_queue.reset_for_voice_call()
    return _read(bridge)
