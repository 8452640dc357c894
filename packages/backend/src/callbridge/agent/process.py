"""Worker process handles.

Learn: The executor never touches asyncio.subprocess directly. It asks a
launcher for a WorkerProcess and drives it through start() / wait() /
kill(). Production uses SubprocessWorker; tests inject a fake that exits
when told to, so lifecycle logic is testable without spawning anything.

The subprocess pattern follows the adapters' _run_subprocess helper
(asyncio.create_subprocess_exec with piped output), except that output is
streamed line by line instead of collected with communicate(): workers
run for many minutes and we want their output in the log as it happens.
"""

import asyncio
import os
import signal
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

OutputHandler = Callable[[str, str], None]  # (stream name, line)


class ProcessStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    EXITED = "exited"


class WorkerProcess(ABC):
    """Handle on one external worker process."""

    @property
    @abstractmethod
    def pid(self) -> Optional[int]:
        """OS process id once started."""

    @property
    @abstractmethod
    def status(self) -> ProcessStatus:
        """Where the process is in its own lifecycle."""

    @abstractmethod
    async def start(self) -> None:
        """Launch the process. Raises OSError if it cannot be launched."""

    @abstractmethod
    async def wait(self) -> int:
        """Wait for exit and return the exit code."""

    @abstractmethod
    def kill(self) -> None:
        """Ask the process to terminate (SIGTERM). Safe to call at any time."""


ProcessLauncher = Callable[[list[str], str, OutputHandler], WorkerProcess]


class SubprocessWorker(WorkerProcess):
    """WorkerProcess backed by asyncio.create_subprocess_exec."""

    def __init__(
        self,
        cmd: list[str],
        cwd: str,
        on_output: Optional[OutputHandler] = None,
        env: Optional[dict[str, str]] = None,
    ):
        self.cmd = cmd
        self.cwd = cwd
        self._on_output = on_output
        self._env = {**os.environ, **(env or {})}
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._readers: list[asyncio.Task] = []
        self._kill_requested = False
        self._returncode: Optional[int] = None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    @property
    def status(self) -> ProcessStatus:
        if self._returncode is not None:
            return ProcessStatus.EXITED
        if self._proc is None:
            return ProcessStatus.PENDING
        return ProcessStatus.RUNNING

    async def start(self) -> None:
        if self._kill_requested:
            self._returncode = -signal.SIGTERM
            return

        self._proc = await asyncio.create_subprocess_exec(
            *self.cmd,
            cwd=self.cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._env,
        )
        self._readers = [
            asyncio.create_task(self._pump(self._proc.stdout, "stdout")),
            asyncio.create_task(self._pump(self._proc.stderr, "stderr")),
        ]
        # kill() may have landed while we were launching
        if self._kill_requested:
            self.kill()

    async def wait(self) -> int:
        if self._proc is None:
            return self._returncode if self._returncode is not None else -1
        code = await self._proc.wait()
        await asyncio.gather(*self._readers, return_exceptions=True)
        self._returncode = code
        return code

    def kill(self) -> None:
        self._kill_requested = True
        if self._proc is None or self._proc.returncode is not None:
            return
        try:
            self._proc.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            pass  # exited between the check and the signal

    async def _pump(self, stream: Optional[asyncio.StreamReader], name: str) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line and self._on_output:
                self._on_output(name, line)


def subprocess_launcher(
    cmd: list[str], cwd: str, on_output: OutputHandler
) -> WorkerProcess:
    """Default ProcessLauncher."""
    return SubprocessWorker(cmd, cwd, on_output=on_output)
