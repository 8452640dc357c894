"""Inbound dispatcher — the four-step policy applied to every user message.

Learn: The dispatcher holds no conversation state of its own. It reads the
AppendResult the registry returned for the message (did that append
already satisfy a waiter?) and asks the worker bridge and executor about
their open requests and running workers. Everything it does is
synchronous, so no other event can slip in between "decide" and "act".
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from callbridge.agent.executor import TaskExecutor
from callbridge.models import Conversation
from callbridge.services.chat_queue import ChatQueue
from callbridge.services.conversation_registry import AppendResult
from callbridge.services.worker_bridge import WorkerBridge

logger = logging.getLogger("callbridge.dispatcher")


class DispatchOutcome(str, Enum):
    RESOLVED_WAIT = "resolved_wait"
    RESOLVED_QUESTION = "resolved_question"
    IGNORED = "ignored"
    QUEUED = "queued"
    SPAWNED = "spawned"


@dataclass
class DispatchStats:
    """Runtime counters, one per outcome."""
    counts: dict[str, int] = field(
        default_factory=lambda: {outcome.value: 0 for outcome in DispatchOutcome}
    )

    def record(self, outcome: DispatchOutcome) -> DispatchOutcome:
        self.counts[outcome.value] += 1
        return outcome


class InboundDispatcher:
    """Routes an appended user message to exactly one consumer."""

    def __init__(
        self,
        executor: TaskExecutor,
        bridge: WorkerBridge,
        default_working_dir: str,
        chat_queue: Optional[ChatQueue] = None,
    ):
        self.executor = executor
        self.bridge = bridge
        self.default_working_dir = default_working_dir
        self.chat_queue = chat_queue
        self.stats = DispatchStats()

    def dispatch(
        self,
        conversation: Conversation,
        content: str,
        appended: Optional[AppendResult] = None,
    ) -> DispatchOutcome:
        appended = appended or AppendResult()
        channel = conversation.channel

        # 1. Someone is blocked on the next message (tool receive, worker wait)
        if appended.resolved_inbound_wait:
            logger.info("Inbound %s resolved an inbound wait", conversation.id)
            return self.stats.record(DispatchOutcome.RESOLVED_WAIT)
        if self.bridge.resolve_channel_wait(channel, content):
            logger.info("Inbound %s resolved a %s channel wait", conversation.id, channel.value)
            return self.stats.record(DispatchOutcome.RESOLVED_WAIT)

        # 2. Answer to an open question on this conversation
        if appended.resolved_response_wait:
            logger.info("Inbound %s answered a pending response wait", conversation.id)
            return self.stats.record(DispatchOutcome.RESOLVED_QUESTION)
        if self.bridge.resolve_question(conversation.id, content):
            logger.info("Inbound %s answered a worker question", conversation.id)
            return self.stats.record(DispatchOutcome.RESOLVED_QUESTION)

        # 3. The running worker owns this conversation
        if self.executor.is_running(conversation.id):
            logger.info(
                "Worker already running for %s, dropping message: %s",
                conversation.id,
                content[:50],
            )
            return self.stats.record(DispatchOutcome.IGNORED)

        # 4. Chat queue for its channel, otherwise a one-shot worker
        if self.chat_queue and self.chat_queue.channel is channel:
            self.chat_queue.handle_message(content)
            return self.stats.record(DispatchOutcome.QUEUED)

        context = self.executor.get_context(conversation.id) or self.executor.get_latest_context()
        working_dir = context.working_dir if context else self.default_working_dir
        self.executor.execute_task(
            conversation.id,
            content,
            working_dir,
            context=context,
            channel=channel,
        )
        logger.info(
            "Spawned worker for %s on %s (context=%s)",
            conversation.id,
            channel.value,
            context.task_id if context else None,
        )
        return self.stats.record(DispatchOutcome.SPAWNED)
