"""Pydantic schemas for worker executions and the chat session."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from callbridge.models import Role


class TaskRead(BaseModel):
    task_id: str
    task: str
    status: str
    working_dir: str
    pid: Optional[int] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    completion_summary: Optional[str] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None
    output_tail: list[str] = Field(default_factory=list)


class KillResponse(BaseModel):
    task_id: str
    killed: bool


class ChatMessageRead(BaseModel):
    role: Role
    content: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class ChatRead(BaseModel):
    enabled: bool
    channel: Optional[str] = None
    session_id: Optional[str] = None
    processing: bool = False
    pending_count: int = 0
    carried_context: Optional[str] = None
    history: list[ChatMessageRead] = Field(default_factory=list)
