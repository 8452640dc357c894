"""Composition root — builds one fully wired engine.

Learn: Nothing in callbridge is a module-level singleton except settings.
The registry, executor and chat queue are created here, handed to the
services that need them, and hung off app.state by the app factory. Tests
build as many independent bridges as they like, each with a fake gateway
and a fake process launcher.
"""

from dataclasses import dataclass
from typing import Optional

from callbridge.agent.adapters import get_adapter
from callbridge.agent.executor import TaskExecutor
from callbridge.agent.process import ProcessLauncher
from callbridge.config import Settings
from callbridge.dispatcher import InboundDispatcher
from callbridge.gateway import Gateway, HttpGateway
from callbridge.models import Channel
from callbridge.services.chat_queue import ChatQueue
from callbridge.services.conversation_registry import ConversationRegistry
from callbridge.services.inbound_events import InboundEventService
from callbridge.services.reaper import Reaper
from callbridge.services.tools import ToolService
from callbridge.services.worker_bridge import WorkerBridge


@dataclass
class Bridge:
    settings: Settings
    gateway: Gateway
    registry: ConversationRegistry
    executor: TaskExecutor
    chat_queue: Optional[ChatQueue]
    worker: WorkerBridge
    dispatcher: InboundDispatcher
    events: InboundEventService
    tools: ToolService
    reaper: Reaper

    async def shutdown(self) -> None:
        """Stop background work, kill workers, release every waiter."""
        self.reaper.stop()
        self.executor.kill_all()
        self.worker.close()
        self.registry.close()
        await self.gateway.aclose()


def build_bridge(
    settings: Settings,
    gateway: Optional[Gateway] = None,
    launcher: Optional[ProcessLauncher] = None,
) -> Bridge:
    if gateway is None:
        gateway = HttpGateway(
            settings.gateway_url,
            token=settings.gateway_token,
            timeout=settings.gateway_timeout_seconds,
        )

    adapter = get_adapter(
        settings.default_adapter,
        binary=settings.worker_binary,
        max_turns=settings.worker_max_turns,
    )
    registry = ConversationRegistry()
    executor = TaskExecutor(adapter, settings.api_url, launcher=launcher)

    chat_queue = None
    if settings.chat_enabled:
        chat_queue = ChatQueue(
            executor,
            settings.default_working_dir,
            channel=Channel(settings.chat_channel),
            max_history=settings.chat_history_size,
        )

    worker = WorkerBridge(
        registry,
        executor,
        gateway,
        settings.user_address,
        ask_timeout=settings.ask_timeout_seconds,
        chat_queue=chat_queue,
    )
    dispatcher = InboundDispatcher(
        executor,
        worker,
        settings.default_working_dir,
        chat_queue=chat_queue,
    )

    return Bridge(
        settings=settings,
        gateway=gateway,
        registry=registry,
        executor=executor,
        chat_queue=chat_queue,
        worker=worker,
        dispatcher=dispatcher,
        events=InboundEventService(registry, dispatcher, chat_queue),
        tools=ToolService(
            registry,
            gateway,
            settings.user_address,
            reply_timeout=settings.transcript_timeout_seconds,
            receive_timeout=settings.receive_timeout_seconds,
        ),
        reaper=Reaper(
            executor,
            registry,
            interval=settings.reap_interval_seconds,
            task_idle_max_age=settings.task_idle_max_age_seconds,
            task_max_running=settings.task_max_running_seconds,
            conversation_retention=settings.conversation_retention_seconds,
        ),
    )
