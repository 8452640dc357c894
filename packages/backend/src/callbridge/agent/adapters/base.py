"""Worker adapter base — pluggable interface for coding agent backends.

Learn: callbridge doesn't build its own coding agent. It dispatches to
existing tools (Claude Code today) and gives them a way to talk to the
user through plain HTTP call-backs that the worker invokes with curl.

Each adapter knows how to:
1. Build the command line that runs its agent non-interactively
2. Build the prompt for a one-shot task started from a call or message
3. Build the prompt for one turn of the always-on chat
4. Check whether its binary is installed
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from callbridge.models import Channel


@dataclass
class TaskContext:
    """What an earlier worker was asked to do and what it reported back.

    Learn: This is how work carries across channels. A follow-up call, or
    a WhatsApp message after a phone call, gets the previous task's
    summary and working directory in its prompt.
    """

    task_id: str
    original_task: str
    working_dir: str
    completion_summary: Optional[str] = None


class WorkerAdapter(ABC):
    """Abstract base for worker adapters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier, e.g. 'claude_code'."""

    @abstractmethod
    def build_command(self, prompt: str, resume_hint: Optional[str] = None) -> list[str]:
        """Command line for one non-interactive worker run.

        resume_hint asks the worker to resume/pin a native session id.
        """

    @abstractmethod
    def build_task_prompt(
        self,
        task: str,
        conversation_id: str,
        api_url: str,
        working_dir: str,
        channel: Channel = Channel.VOICE,
        context: Optional[TaskContext] = None,
    ) -> str:
        """Prompt for a one-shot task started by a call or message."""

    @abstractmethod
    def build_chat_prompt(
        self,
        latest_message: str,
        history: Sequence[tuple[str, str]],
        session_id: str,
        api_url: str,
        working_dir: str,
        channel: Channel = Channel.WHATSAPP,
        carried_context: Optional[str] = None,
    ) -> str:
        """Prompt for one turn of the always-on chat.

        history is (role, content) pairs, oldest first, excluding
        latest_message.
        """

    def validate_environment(self) -> tuple[bool, str]:
        """Check if this adapter's worker is installed.

        Returns (is_valid, message). Override to check for
        specific binaries on PATH.
        """
        return True, "ok"
