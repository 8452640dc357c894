"""Deferred — a future plus a timer, resolved exactly once.

Learn: Webhooks arrive on their own schedule, but tool calls and worker
call-backs want to block until "the user said something". A Deferred
bridges the two: the caller awaits wait(), the webhook handler calls
resolve(value). If nobody resolves it before the deadline, it resolves
itself to None. Timeouts are a value, not an exception, so callers branch
on `is None`.

Everything runs on one event loop, so there is no locking: resolve() and
the timer callback can never interleave.
"""

import asyncio
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Deferred(Generic[T]):
    """One-shot rendezvous with a deadline.

    on_settle runs once, however the Deferred finishes (resolved, expired
    or the awaiting task cancelled). Owners use it to unregister.
    """

    def __init__(
        self,
        timeout: float,
        on_settle: Optional[Callable[["Deferred[T]"], None]] = None,
    ):
        loop = asyncio.get_running_loop()
        self._future: asyncio.Future = loop.create_future()
        self._timer = loop.call_later(max(timeout, 0.0), self._expire)
        self._on_settle = on_settle
        self._future.add_done_callback(self._settled)

    @property
    def done(self) -> bool:
        return self._future.done()

    def resolve(self, value: Optional[T]) -> bool:
        """Deliver a value. Returns False if already settled."""
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def cancel(self) -> bool:
        """Settle with the no-response sentinel (None)."""
        return self.resolve(None)

    async def wait(self) -> Optional[T]:
        return await self._future

    def _expire(self) -> None:
        if not self._future.done():
            self._future.set_result(None)

    def _settled(self, _future: asyncio.Future) -> None:
        self._timer.cancel()
        if self._on_settle is not None:
            callback, self._on_settle = self._on_settle, None
            callback(self)
