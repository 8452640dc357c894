"""Gateway event intake.

Learn: The relay POSTs every normalized webhook here. The response tells
it what happened (resolved a wait, spawned a worker, ...) so it can pick
its hold music or gather template. Unknown calls are not an error: the
event is acknowledged with handled=false.
"""

from fastapi import APIRouter, Depends

from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge
from callbridge.schemas.events import EventResponse, InboundEvent

router = APIRouter()


@router.post("/events", response_model=EventResponse)
async def receive_event(body: InboundEvent, bridge: Bridge = Depends(get_bridge)):
    """Apply one gateway event (call lifecycle, speech or message)."""
    return bridge.events.handle(body)
