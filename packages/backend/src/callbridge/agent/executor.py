"""Task executor — spawns worker processes and tracks their lifecycle.

Learn: One TaskExecution per spawned worker, keyed by task id (for
one-shot tasks that is the conversation id, so "is a worker already
running for this conversation?" is a dict lookup).

  running → completed   (exit code 0)
          → failed      (non-zero exit, launch error, kill, reap)

The status leaves `running` exactly once. Whatever happens after that
(a killed process finally exiting, say) does not overwrite it.

spawn() is synchronous: it records the execution and schedules a
supervisor task on the running loop. That keeps "record, then decide"
logic in callers free of suspension points. The supervisor launches the
process, streams its output into the log, and fires on_exit when it
terminates, so the chat queue can move on to its next message.

Executions are also the source of cross-channel context: a worker reports
a completion summary through the call-back surface, and later tasks on
any channel can pick that summary up.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

import structlog

from callbridge.agent.adapters import TaskContext, WorkerAdapter
from callbridge.agent.process import ProcessLauncher, WorkerProcess, subprocess_launcher
from callbridge.models import Channel, utcnow

logger = structlog.get_logger()

ExitCallback = Callable[[int], None]

OUTPUT_TAIL_LINES = 50


class TaskStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TaskExecution:
    task_id: str
    task: str
    working_dir: str
    process: WorkerProcess
    status: TaskStatus = TaskStatus.RUNNING
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    completion_summary: Optional[str] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None
    output: deque = field(default_factory=lambda: deque(maxlen=OUTPUT_TAIL_LINES))

    @property
    def running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    def context(self) -> TaskContext:
        return TaskContext(
            task_id=self.task_id,
            original_task=self.task,
            working_dir=self.working_dir,
            completion_summary=self.completion_summary,
        )


@dataclass
class ReapStats:
    removed: int = 0
    zombies_killed: int = 0


class TaskExecutor:
    """Spawns and supervises worker processes.

    Learn: State is owned by the instance, not the module — tests build
    as many executors as they like, each with its own launcher.
    """

    def __init__(
        self,
        adapter: WorkerAdapter,
        api_url: str,
        launcher: Optional[ProcessLauncher] = None,
    ):
        self.adapter = adapter
        self.api_url = api_url
        self._launcher = launcher or subprocess_launcher
        self._executions: dict[str, TaskExecution] = {}
        self._callback_links: dict[str, str] = {}
        self._supervisors: set[asyncio.Task] = set()

    # ─── Spawning ─────────────────────────────────────────

    def spawn(
        self,
        task_id: str,
        prompt: str,
        working_dir: str,
        resume_hint: Optional[str] = None,
        on_exit: Optional[ExitCallback] = None,
        task: Optional[str] = None,
    ) -> TaskExecution:
        """Launch one worker for task_id and start supervising it.

        Must be called from within the running event loop.
        """
        existing = self._executions.get(task_id)
        if existing and existing.running:
            logger.warning("executor.replacing_running_task", task_id=task_id)
            self._terminate(existing, "replaced by a new spawn")

        cmd = self.adapter.build_command(prompt, resume_hint=resume_hint)
        execution_ref: list[TaskExecution] = []

        def on_output(stream: str, line: str) -> None:
            if execution_ref:
                execution_ref[0].output.append(line)
            if stream == "stderr":
                logger.warning("worker.stderr", task_id=task_id, line=line)
            else:
                logger.debug("worker.stdout", task_id=task_id, line=line)

        process = self._launcher(cmd, working_dir, on_output)
        execution = TaskExecution(
            task_id=task_id,
            task=task if task is not None else prompt,
            working_dir=working_dir,
            process=process,
        )
        execution_ref.append(execution)
        self._executions[task_id] = execution

        supervisor = asyncio.get_running_loop().create_task(
            self._supervise(execution, on_exit)
        )
        self._supervisors.add(supervisor)
        supervisor.add_done_callback(self._supervisors.discard)

        logger.info(
            "executor.spawned",
            task_id=task_id,
            adapter=self.adapter.name,
            working_dir=working_dir,
            resume_hint=resume_hint,
            task=execution.task[:50],
        )
        return execution

    def execute_task(
        self,
        task_id: str,
        task: str,
        working_dir: str,
        context: Optional[TaskContext] = None,
        channel: Channel = Channel.VOICE,
    ) -> TaskExecution:
        """Spawn a one-shot worker for a task that came in on `channel`."""
        prompt = self.adapter.build_task_prompt(
            task=task,
            conversation_id=task_id,
            api_url=self.api_url,
            working_dir=working_dir,
            channel=channel,
            context=context,
        )
        if context:
            logger.info(
                "executor.follow_up",
                task_id=task_id,
                previous_task_id=context.task_id,
            )
        return self.spawn(task_id, prompt, working_dir, task=task)

    async def _supervise(
        self, execution: TaskExecution, on_exit: Optional[ExitCallback]
    ) -> None:
        try:
            await execution.process.start()
        except OSError as e:
            logger.error("executor.launch_failed", task_id=execution.task_id, error=str(e))
            self._finish(execution, -1, error=f"Failed to launch worker: {e}")
            self._notify(execution, on_exit, -1)
            return

        code = await execution.process.wait()
        self._finish(
            execution,
            code,
            error=None if code == 0 else f"Process exited with code {code}",
        )
        logger.info(
            "executor.exited",
            task_id=execution.task_id,
            exit_code=code,
            status=execution.status.value,
        )
        self._notify(execution, on_exit, code)

    def _finish(self, execution: TaskExecution, code: int, error: Optional[str]) -> None:
        if not execution.running:
            return
        execution.exit_code = code
        execution.status = TaskStatus.COMPLETED if code == 0 else TaskStatus.FAILED
        execution.error = error
        execution.completed_at = utcnow()

    def _notify(
        self, execution: TaskExecution, on_exit: Optional[ExitCallback], code: int
    ) -> None:
        if on_exit is None:
            return
        try:
            on_exit(code)
        except Exception:
            logger.exception("executor.on_exit_failed", task_id=execution.task_id)

    # ─── Context ──────────────────────────────────────────

    def link_callback(self, callback_id: str, original_id: str) -> None:
        """Make callback_id's context resolve through original_id."""
        self._callback_links[callback_id] = original_id
        logger.info("executor.callback_linked", callback_id=callback_id, original_id=original_id)

    def get_context(self, id: str) -> Optional[TaskContext]:
        """Prior context for id (following callback links), if a summary exists.

        None means "no prior context", not an error.
        """
        execution = self._executions.get(self._callback_links.get(id, id))
        if execution and execution.completion_summary:
            return execution.context()
        return None

    def record_completion(self, id: str, summary: str) -> bool:
        execution = self._executions.get(id)
        if not execution:
            logger.warning("executor.completion_unknown_task", task_id=id)
            return False
        execution.completion_summary = summary
        logger.info("executor.completion_recorded", task_id=id, summary=summary[:50])
        return True

    def get_latest_context(self) -> Optional[TaskContext]:
        """Context of the newest execution that reported a completion, on any channel.

        Running or silently failed workers have no context to hand on.
        """
        completed = [e for e in self._executions.values() if e.completion_summary]
        if not completed:
            return None
        latest = max(completed, key=lambda e: e.started_at)
        return latest.context()

    # ─── Queries / control ────────────────────────────────

    def get(self, id: str) -> Optional[TaskExecution]:
        return self._executions.get(id)

    def all(self) -> list[TaskExecution]:
        return list(self._executions.values())

    def is_running(self, id: str) -> bool:
        execution = self._executions.get(id)
        return execution is not None and execution.running

    def kill(self, id: str) -> bool:
        """Terminate a running task. Returns False if it was not running."""
        execution = self._executions.get(id)
        if not execution or not execution.running:
            return False
        self._terminate(execution, "killed")
        return True

    def kill_all(self) -> int:
        """Terminate every running worker. Used at shutdown."""
        running = [e for e in self._executions.values() if e.running]
        for execution in running:
            self._terminate(execution, "killed at shutdown")
        if running:
            logger.info("executor.killed_all", count=len(running))
        return len(running)

    def _terminate(self, execution: TaskExecution, reason: str) -> None:
        execution.process.kill()
        execution.status = TaskStatus.FAILED
        execution.error = reason
        execution.completed_at = utcnow()
        logger.info("executor.killed", task_id=execution.task_id, reason=reason)

    def reap(self, max_idle_age: float, max_running_age: float) -> ReapStats:
        """Drop old finished executions and kill zombies.

        Ages are seconds since the execution started.
        """
        now = utcnow()
        idle_cutoff = now - timedelta(seconds=max_idle_age)
        running_cutoff = now - timedelta(seconds=max_running_age)
        stats = ReapStats()

        for id, execution in list(self._executions.items()):
            if execution.running:
                if execution.started_at < running_cutoff:
                    self._terminate(execution, "exceeded maximum running time")
                    del self._executions[id]
                    stats.zombies_killed += 1
                    logger.warning("executor.zombie_reaped", task_id=id)
            elif execution.started_at < idle_cutoff:
                del self._executions[id]
                stats.removed += 1

        if stats.removed or stats.zombies_killed:
            logger.info(
                "executor.reaped",
                removed=stats.removed,
                zombies_killed=stats.zombies_killed,
            )
        return stats
