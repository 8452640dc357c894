"""Pydantic schemas for reading conversations.

Learn: Conversations are dataclasses, not ORM rows, but from_attributes
works on any object with matching attributes, so the registry's records
serialize directly.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from callbridge.models import Channel, ConversationState, Direction, Role


class MessageRead(BaseModel):
    role: Role
    content: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class ConversationSummary(BaseModel):
    """List view — no message bodies."""
    id: str
    channel: Channel
    direction: Direction
    state: ConversationState
    correlation_id: str
    counterpart: Optional[str]
    started_at: datetime
    ended_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ConversationRead(ConversationSummary):
    """Full conversation with history."""
    messages: list[MessageRead]
    metadata: dict[str, str]
    duration_seconds: float
