"""Pydantic schemas for normalized gateway events.

Learn: The relay in front of the telephony / messaging provider turns each
webhook into one of five event types and POSTs it to /api/v1/events.
Webhooks are at-least-once, so the same event may arrive twice.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from callbridge.models import Channel


class EventType(str, Enum):
    CALL_STARTED = "call.started"
    CALL_ANSWERED = "call.answered"
    CALL_ENDED = "call.ended"
    SPEECH = "speech"
    MESSAGE = "message"


class InboundEvent(BaseModel):
    type: EventType
    channel: Channel = Channel.VOICE
    correlation_id: str = Field(..., min_length=1, description="Provider call / message id")
    sender: str = Field("", alias="from", description="Address of the sender")
    recipient: str = Field("", alias="to", description="Address the event was sent to")
    content: str = ""

    model_config = {"populate_by_name": True}


class EventResponse(BaseModel):
    """What happened, so the relay can pick its hold / gather template."""
    handled: bool
    conversation_id: Optional[str] = None
    outcome: Optional[str] = None
