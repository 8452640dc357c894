"""Health check endpoint.

Learn: Reports the server version plus a snapshot of the engine: how many
conversations are live, how many workers are running, whether the chat
queue is busy, and the dispatcher's outcome counters.
"""

from fastapi import APIRouter, Depends

from callbridge import __version__
from callbridge.api.dependencies import get_bridge
from callbridge.bridge import Bridge

router = APIRouter()


@router.get("/health")
async def health_check(bridge: Bridge = Depends(get_bridge)):
    """Check server health and engine state."""
    running = [e for e in bridge.executor.all() if e.running]
    checks = {
        "server": "ok",
        "version": __version__,
        "adapter": bridge.executor.adapter.name,
        "active_conversations": len(bridge.registry.active()),
        "running_workers": len(running),
        "dispatch": dict(bridge.dispatcher.stats.counts),
    }
    if bridge.chat_queue:
        checks["chat"] = {
            "channel": bridge.chat_queue.channel.value,
            "processing": bridge.chat_queue.processing,
            "pending": bridge.chat_queue.pending_count,
        }

    ok, detail = bridge.executor.adapter.validate_environment()
    checks["worker_binary"] = "ok" if ok else detail

    status = "healthy" if ok else "degraded"
    return {"status": status, **checks}
