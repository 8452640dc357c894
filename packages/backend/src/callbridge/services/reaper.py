"""Reaper — periodic cleanup of finished tasks, zombies and old conversations.

Learn: Runs as a long-lived task in the FastAPI lifespan. Every interval it:
- drops finished executions older than the idle window
- kills executions still running past the maximum running time (zombies)
- drops ended conversations older than the retention window

Nothing here is ever surfaced to a caller; a zombie simply disappears.
"""

import asyncio

import structlog

from callbridge.agent.executor import ReapStats, TaskExecutor
from callbridge.services.conversation_registry import ConversationRegistry

logger = structlog.get_logger()


class Reaper:
    """Background sweeper for the executor and the registry.

    Usage:
        reaper = Reaper(executor, registry)
        task = asyncio.create_task(reaper.run_loop())
        ...
        reaper.stop()
    """

    def __init__(
        self,
        executor: TaskExecutor,
        registry: ConversationRegistry,
        interval: float = 3600.0,
        task_idle_max_age: float = 3600.0,
        task_max_running: float = 1800.0,
        conversation_retention: float = 3600.0,
    ):
        self.executor = executor
        self.registry = registry
        self.interval = interval
        self.task_idle_max_age = task_idle_max_age
        self.task_max_running = task_max_running
        self.conversation_retention = conversation_retention
        self._running = False
        self._wakeup = asyncio.Event()

    def sweep(self) -> ReapStats:
        """One cleanup pass."""
        stats = self.executor.reap(self.task_idle_max_age, self.task_max_running)
        removed = self.registry.cleanup(self.conversation_retention)
        if removed:
            logger.info("reaper.conversations_removed", count=removed)
        return stats

    async def run_loop(self) -> None:
        self._running = True
        logger.info("reaper.started", interval=self.interval)

        while self._running:
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if not self._running:
                break
            try:
                self.sweep()
            except Exception:
                logger.exception("reaper.error")

    def stop(self) -> None:
        """Signal the loop to stop; it exits without sleeping out the interval."""
        self._running = False
        self._wakeup.set()
        logger.info("reaper.stopping")
