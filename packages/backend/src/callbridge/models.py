"""In-memory domain records for conversations.

Learn: There is no database. Conversations live for the lifetime of the
process inside ConversationRegistry, so these are plain dataclasses rather
than ORM models. Enums subclass str so they serialize straight into JSON
responses and compare equal to their wire values.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Channel(str, Enum):
    VOICE = "voice"
    SMS = "sms"
    WHATSAPP = "whatsapp"

    @property
    def is_messaging(self) -> bool:
        return self is not Channel.VOICE


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ConversationState(str, Enum):
    RINGING = "ringing"  # voice only
    ACTIVE = "active"
    PENDING_RESPONSE = "pending_response"  # user spoke, nobody has answered yet
    ENDED = "ended"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque 128-bit random identifier."""
    return uuid.uuid4().hex


@dataclass
class Message:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class Conversation:
    """A tracked exchange on one channel with one counterpart."""

    id: str
    channel: Channel
    direction: Direction
    state: ConversationState
    correlation_id: str
    messages: list[Message] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def ended(self) -> bool:
        return self.state is ConversationState.ENDED

    @property
    def counterpart(self) -> Optional[str]:
        """Address of the other party: the sender inbound, the recipient outbound."""
        if self.direction is Direction.INBOUND:
            return self.metadata.get("from")
        return self.metadata.get("to")

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or utcnow()
        return (end - self.started_at).total_seconds()
