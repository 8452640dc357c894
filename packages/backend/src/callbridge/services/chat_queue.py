"""Always-on chat queue — one long-lived messaging channel, one worker at a time.

Learn: Every incoming chat message spawns a fresh worker with the whole
conversation history rendered into its prompt. Messages that arrive while
a worker is still running are queued and handled in order once it exits,
so there is never more than one chat worker at a time.

We deliberately do NOT ask the worker to resume a native session by id.
Claude Code locks session files, and rapid or overlapping spawns on the
same id fail with "Session ID already in use". Continuity lives entirely
in the text history instead. The session id still appears in the prompt
so the worker can put it in its reply footer.

Context persists until a voice call starts. That is the only reset.
"""

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from callbridge.agent.executor import TaskExecutor
from callbridge.models import Channel, Role, utcnow

logger = structlog.get_logger()


@dataclass
class ChatMessage:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utcnow)


class ChatQueue:
    """Serialized, history-aware chat on one messaging channel."""

    def __init__(
        self,
        executor: TaskExecutor,
        working_dir: str,
        channel: Channel = Channel.WHATSAPP,
        max_history: int = 50,
    ):
        self.executor = executor
        self.working_dir = working_dir
        self.channel = channel
        self.max_history = max_history
        self._history: deque[ChatMessage] = deque(maxlen=max_history)
        self._pending: deque[ChatMessage] = deque()
        self._processing = False
        self._carried_context: Optional[str] = None
        self._session_id = str(uuid.uuid4())
        logger.info("chat.initialized", session_id=self._session_id[:8], channel=channel.value)

    # ─── Read-only state ──────────────────────────────────

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def carried_context(self) -> Optional[str]:
        return self._carried_context

    # ─── Inbound / outbound ───────────────────────────────

    def handle_message(self, text: str) -> None:
        """Record a user message and process it now, or queue it behind the running worker."""
        message = ChatMessage(role=Role.USER, content=text)
        self._history.append(message)

        if self._processing:
            self._pending.append(message)
            logger.info("chat.queued", pending=len(self._pending), preview=text[:60])
            return

        self._process(message)

    def record_assistant_message(self, text: str) -> None:
        """Called by the outbound send path once the worker's reply went out."""
        self._history.append(ChatMessage(role=Role.ASSISTANT, content=text))

    def reset_for_voice_call(self) -> None:
        """Start a fresh session. A worker already running finishes on its own."""
        old = self._session_id
        self._history.clear()
        self._pending.clear()
        self._carried_context = None
        self._processing = False
        self._session_id = str(uuid.uuid4())
        logger.info("chat.reset", old_session_id=old[:8], session_id=self._session_id[:8])

    def set_voice_context(self, text: str) -> None:
        """Carry context from a voice call into the following chat prompts."""
        self._carried_context = text
        logger.info("chat.context_set", preview=text[:80])

    # ─── Processing ───────────────────────────────────────

    def _process(self, message: ChatMessage) -> None:
        self._processing = True
        session_id = self._session_id
        spawn_id = f"chat-{uuid.uuid4().hex[:8]}"

        # Only what came before this message; later queued messages stay out.
        prior = []
        for m in self._history:
            if m is message:
                break
            prior.append((m.role.value, m.content))
        else:
            prior = []  # evicted by the cap, so everything left is newer

        prompt = self.executor.adapter.build_chat_prompt(
            latest_message=message.content,
            history=prior,
            session_id=session_id,
            api_url=self.executor.api_url,
            working_dir=self.working_dir,
            channel=self.channel,
            carried_context=self._carried_context,
        )

        logger.info("chat.spawning", session_id=session_id[:8], spawn_id=spawn_id)
        self.executor.spawn(
            spawn_id,
            prompt,
            self.working_dir,
            resume_hint=None,
            on_exit=lambda code: self._on_worker_exit(session_id, code),
            task=message.content,
        )

    def _on_worker_exit(self, session_id: str, code: int) -> None:
        if session_id != self._session_id:
            # Session was reset while this worker ran; the new session owns the flag.
            logger.info("chat.stale_worker_exited", session_id=session_id[:8], exit_code=code)
            return

        self._processing = False
        if self._pending:
            next_message = self._pending.popleft()
            logger.info("chat.processing_queued", preview=next_message.content[:60])
            self._process(next_message)
