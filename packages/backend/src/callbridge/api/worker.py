"""Worker call-back API — what spawned workers curl.

Learn: Routes live under /api/worker (not /api/v1) because the paths are
baked into worker prompts. They are open: workers run on the same host
and are never handed a key.

- POST /ask/:id       → speak a question, block for the answer
- POST /say/:id       → speak without waiting
- POST /complete/:id  → report the result (spoken, sent, or call back)
- GET  /status/:id    → is the conversation still live?
- POST /send/:channel → SMS / WhatsApp to the user
- POST /wait/:channel → block for the user's next message on a channel
- POST /call          → place a new call
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge
from callbridge.gateway import GatewayError
from callbridge.models import Channel
from callbridge.schemas.worker import (
    AskResponse,
    CallResponse,
    CompleteRequest,
    CompleteResponse,
    SayResponse,
    SendResponse,
    StatusResponse,
    WaitRequest,
    WaitResponse,
    WorkerMessage,
)
from callbridge.services.worker_bridge import UserAddressMissingError

router = APIRouter(prefix="/api/worker", tags=["worker"])


def _messaging(channel: Channel) -> Channel:
    if not channel.is_messaging:
        raise HTTPException(status_code=400, detail="Channel must be 'sms' or 'whatsapp'")
    return channel


@router.post("/ask/{conversation_id}", response_model=AskResponse)
async def ask(conversation_id: str, body: WorkerMessage, bridge: Bridge = Depends(get_bridge)):
    """Ask the user a question and wait (up to the ask timeout) for the answer."""
    return await bridge.worker.ask(conversation_id, body.message)


@router.post("/say/{conversation_id}", response_model=SayResponse)
async def say(conversation_id: str, body: WorkerMessage, bridge: Bridge = Depends(get_bridge)):
    return await bridge.worker.say(conversation_id, body.message)


@router.post("/complete/{conversation_id}", response_model=CompleteResponse)
async def complete(
    conversation_id: str, body: CompleteRequest, bridge: Bridge = Depends(get_bridge)
):
    """Record completion and deliver the summary to the user."""
    result = await bridge.worker.complete(conversation_id, body.summary)
    if result.delivered == "failed":
        raise HTTPException(status_code=502, detail=result.model_dump())
    return result


@router.get("/status/{conversation_id}", response_model=StatusResponse)
async def status(conversation_id: str, bridge: Bridge = Depends(get_bridge)):
    return bridge.worker.status(conversation_id)


@router.post("/send/{channel}", response_model=SendResponse)
async def send(channel: Channel, body: WorkerMessage, bridge: Bridge = Depends(get_bridge)):
    """Send an SMS or WhatsApp message to the configured user."""
    _messaging(channel)
    try:
        return await bridge.worker.send(channel, body.message)
    except UserAddressMissingError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=f"Failed to send: {e}")


@router.post("/wait/{channel}", response_model=WaitResponse)
async def wait(
    channel: Channel,
    body: Optional[WaitRequest] = None,
    bridge: Bridge = Depends(get_bridge),
):
    """Block until the user's next message on this channel, or time out."""
    _messaging(channel)
    timeout = body.timeout_seconds if body else None
    if timeout is None:
        timeout = bridge.settings.channel_wait_timeout_seconds
    return await bridge.worker.wait_for_next_message(channel, timeout)


@router.post("/call", response_model=CallResponse)
async def call(body: WorkerMessage, bridge: Bridge = Depends(get_bridge)):
    """Place a fresh outbound call to the user."""
    try:
        return await bridge.worker.call(body.message)
    except UserAddressMissingError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=f"Failed to call: {e}")
