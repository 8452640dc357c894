"""Pydantic schemas for the worker call-back surface.

Learn: These are the bodies a spawned worker sends with curl and the
JSON it reads back. Fallback outcomes (user gone, timeout) are ordinary
200 responses with a readable message, so a worker never has to parse
an error to keep going.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


# ─── Requests (worker → callbridge) ─────────────────────


class WorkerMessage(BaseModel):
    """Text to speak or send to the user."""
    message: str = Field(..., min_length=1, description="Text for the user")


class CompleteRequest(BaseModel):
    summary: str = Field(..., min_length=1, description="What the worker accomplished")


class WaitRequest(BaseModel):
    timeout_seconds: Optional[float] = Field(
        None, gt=0, description="How long to wait (default from settings)"
    )


# ─── Responses (callbridge → worker) ────────────────────


class AskResponse(BaseModel):
    response: str
    user_on_call: bool


class SayResponse(BaseModel):
    success: bool
    delivered: bool
    reason: Optional[str] = None


class CompleteResponse(BaseModel):
    delivered: Literal["spoken", "sent", "callback", "failed"]
    new_conversation_id: Optional[str] = None
    original_conversation_id: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None


class StatusResponse(BaseModel):
    conversation_id: str
    active: bool
    state: str


class SendResponse(BaseModel):
    success: bool
    message_id: str


class WaitResponse(BaseModel):
    received: bool
    message: Optional[str] = None
    reason: Optional[str] = None


class CallResponse(BaseModel):
    conversation_id: str
