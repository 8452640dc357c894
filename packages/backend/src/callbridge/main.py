"""FastAPI application factory.

Learn: create_app() builds one engine (registry, executor, chat queue and
the services around them) and hangs it off app.state.bridge. The lifespan
starts the reaper and, on shutdown, kills every worker and releases every
pending wait, so nothing blocks a clean exit.

Tests pass their own gateway and process launcher; uvicorn uses the
module-level `app` with the real HTTP gateway and subprocess workers.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from callbridge import __version__
from callbridge.agent.process import ProcessLauncher
from callbridge.api import api_router, worker_router
from callbridge.bridge import build_bridge
from callbridge.config import Settings, settings as default_settings
from callbridge.gateway import Gateway
from callbridge.middleware.request_id import RequestIdMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    bridge = app.state.bridge
    logger.info(
        "callbridge.starting",
        version=__version__,
        environment=bridge.settings.environment,
        port=bridge.settings.port,
        api_url=bridge.settings.api_url,
        chat_channel=bridge.chat_queue.channel.value if bridge.chat_queue else None,
    )

    ok, detail = bridge.executor.adapter.validate_environment()
    if not ok:
        logger.warning("callbridge.worker_unavailable", detail=detail)

    reaper_task = asyncio.create_task(bridge.reaper.run_loop())

    yield

    logger.info("callbridge.shutdown")
    await bridge.shutdown()
    reaper_task.cancel()
    try:
        await reaper_task
    except asyncio.CancelledError:
        pass


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[Gateway] = None,
    launcher: Optional[ProcessLauncher] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings

    app = FastAPI(
        title="callbridge",
        description="Cross-channel conversation bridge for coding-agent workers",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.bridge = build_bridge(settings, gateway=gateway, launcher=launcher)

    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)
    app.include_router(worker_router)

    return app


# Default app instance (used by uvicorn: callbridge.main:app)
app = create_app()
