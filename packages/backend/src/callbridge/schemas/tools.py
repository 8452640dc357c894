"""Pydantic schemas for the tool-call surface.

Learn: Each tool call looks synchronous to the caller: it blocks until the
user answers or the wait times out. A timeout is still success=true, with
a fallback response telling the caller to carry on with defaults.
"""

from typing import Optional

from pydantic import BaseModel, Field

from callbridge.models import Channel


# ─── Requests ───────────────────────────────────────────


class InitiateContactRequest(BaseModel):
    """Start a new outbound conversation with the user."""
    channel: Channel = Channel.VOICE
    message: str = Field(..., min_length=1)
    wait_for_reply: bool = True
    timeout_seconds: Optional[float] = Field(None, gt=0)


class ContinueConversationRequest(BaseModel):
    conversation_id: str
    message: str = Field(..., min_length=1)
    timeout_seconds: Optional[float] = Field(None, gt=0)


class SpeakRequest(BaseModel):
    conversation_id: str
    message: str = Field(..., min_length=1)


class EndConversationRequest(BaseModel):
    conversation_id: str
    message: Optional[str] = Field(None, description="Optional goodbye before hanging up")


class ReceiveInboundRequest(BaseModel):
    channel: Optional[Channel] = Field(None, description="Only this channel (None = any)")
    timeout_seconds: Optional[float] = Field(None, gt=0)


class SendOnChannelRequest(BaseModel):
    channel: Channel
    message: str = Field(..., min_length=1)
    wait_for_reply: bool = True
    timeout_seconds: Optional[float] = Field(None, gt=0)


class ReplyToConversationRequest(BaseModel):
    conversation_id: str
    message: str = Field(..., min_length=1)
    wait_for_reply: bool = True
    timeout_seconds: Optional[float] = Field(None, gt=0)


# ─── Result ─────────────────────────────────────────────


class ToolResult(BaseModel):
    success: bool
    conversation_id: Optional[str] = None
    channel: Optional[Channel] = None
    direction: Optional[str] = None
    response: Optional[str] = None
    user_message: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: Optional[int] = None
