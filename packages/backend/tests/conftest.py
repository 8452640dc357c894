"""Test fixtures — a fully wired engine with a fake gateway and fake workers.

Learn: Nothing here talks to a provider or spawns a process:

1. FakeGateway records every outbound speak/send/initiate/hangup and can
   be told to fail, which is how "the user already hung up" is simulated.
2. FakeLauncher hands the executor FakeProcess handles. A test decides
   when each worker exits with proc.exit(code).
3. Each test gets its own app (create_app with both fakes injected), so
   registries, executors and chat sessions never leak between tests.

ASGITransport does not run the lifespan, so the reaper never starts in
tests; the client fixture shuts the bridge down itself.
"""

import asyncio
import signal
from typing import Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from callbridge.agent.process import OutputHandler, ProcessStatus, WorkerProcess
from callbridge.config import Settings
from callbridge.gateway import Gateway, GatewayError
from callbridge.main import create_app
from callbridge.models import Channel

USER = "+15550001111"
BRIDGE_NUMBER = "+15559990000"


# ─── Fakes ────────────────────────────────────────────────


class FakeGateway(Gateway):
    def __init__(self):
        self.spoken: list[tuple[str, str, bool]] = []
        self.sent: list[tuple[Channel, str, str]] = []
        self.calls: list[tuple[str, str]] = []
        self.hangups: list[str] = []
        self.fail = False
        self._counter = 0

    def _check(self, op: str) -> None:
        if self.fail:
            raise GatewayError(f"{op} failed: counterpart gone")

    async def speak(self, correlation_id: str, text: str, wait_for_reply: bool) -> None:
        self._check("speak")
        self.spoken.append((correlation_id, text, wait_for_reply))

    async def send(self, channel: Channel, address: str, text: str) -> str:
        self._check("send")
        self._counter += 1
        self.sent.append((channel, address, text))
        return f"msg-{self._counter}"

    async def initiate(self, address: str, text: str) -> str:
        self._check("initiate")
        self._counter += 1
        self.calls.append((address, text))
        return f"call-{self._counter}"

    async def hangup(self, correlation_id: str) -> None:
        self._check("hangup")
        self.hangups.append(correlation_id)


class FakeProcess(WorkerProcess):
    def __init__(self, cmd: list[str], cwd: str, on_output: OutputHandler, fail_launch: bool = False):
        self.cmd = cmd
        self.cwd = cwd
        self.on_output = on_output
        self.fail_launch = fail_launch
        self.killed = False
        self._status = ProcessStatus.PENDING
        self._exit: Optional[asyncio.Future] = None

    @property
    def pid(self) -> Optional[int]:
        return 4242 if self._status is not ProcessStatus.PENDING else None

    @property
    def status(self) -> ProcessStatus:
        return self._status

    @property
    def prompt(self) -> str:
        return self.cmd[-1]

    async def start(self) -> None:
        if self.fail_launch:
            raise FileNotFoundError(f"No such file: {self.cmd[0]}")
        self._exit = asyncio.get_running_loop().create_future()
        self._status = ProcessStatus.RUNNING
        if self.killed:
            self._exit.set_result(-signal.SIGTERM)

    async def wait(self) -> int:
        code = await self._exit
        self._status = ProcessStatus.EXITED
        return code

    def exit(self, code: int = 0) -> None:
        if self._exit is not None and not self._exit.done():
            self._exit.set_result(code)

    def kill(self) -> None:
        self.killed = True
        self.exit(-signal.SIGTERM)


class FakeLauncher:
    """ProcessLauncher that records every process it creates."""

    def __init__(self):
        self.processes: list[FakeProcess] = []
        self.fail_next = False

    def __call__(self, cmd: list[str], cwd: str, on_output: OutputHandler) -> FakeProcess:
        proc = FakeProcess(cmd, cwd, on_output, fail_launch=self.fail_next)
        self.fail_next = False
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


async def settle(rounds: int = 5) -> None:
    """Let scheduled supervisor tasks and future callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        environment="development",
        user_address=USER,
        public_url="http://bridge.test",
        default_working_dir=str(tmp_path),
        worker_binary="claude-test",
        ask_timeout_seconds=1.0,
        transcript_timeout_seconds=1.0,
        receive_timeout_seconds=0.2,
        channel_wait_timeout_seconds=1.0,
        chat_enabled=True,
        chat_channel="whatsapp",
        api_key="",
    )
    values.update(overrides)
    return Settings(**values)


# ─── Fixtures ─────────────────────────────────────────────


@pytest_asyncio.fixture()
async def gateway():
    return FakeGateway()


@pytest_asyncio.fixture()
async def launcher():
    return FakeLauncher()


@pytest_asyncio.fixture()
async def app(tmp_path, gateway, launcher):
    return create_app(make_settings(tmp_path), gateway=gateway, launcher=launcher)


@pytest_asyncio.fixture()
async def bridge(app):
    return app.state.bridge


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client against the per-test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.bridge.shutdown()
