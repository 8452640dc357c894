"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: The x-api-key check is applied at the include_router level, so
every tool, event and admin route is protected without touching the
handlers. Health is open, and the worker call-back router is mounted
separately under /api/worker (workers are never given a key).
"""

from fastapi import APIRouter, Depends

from callbridge.api.chat import router as chat_router
from callbridge.api.conversations import router as conversations_router
from callbridge.api.dependencies import require_api_key
from callbridge.api.events import router as events_router
from callbridge.api.health import router as health_router
from callbridge.api.tasks import router as tasks_router
from callbridge.api.tools import router as tools_router
from callbridge.api.worker import router as worker_router

_auth = [Depends(require_api_key)]

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])

# Protected routes — require x-api-key when CALLBRIDGE_API_KEY is set
api_router.include_router(events_router, tags=["events"], dependencies=_auth)
api_router.include_router(tools_router, tags=["tools"], dependencies=_auth)
api_router.include_router(conversations_router, tags=["conversations"], dependencies=_auth)
api_router.include_router(tasks_router, tags=["tasks"], dependencies=_auth)
api_router.include_router(chat_router, tags=["chat"], dependencies=_auth)

__all__ = ["api_router", "worker_router"]
