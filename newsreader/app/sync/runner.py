"""Hand-off of fire-and-forget coroutines to the service event loop."""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Coroutine, Optional, Set, Union

import structlog

logger = structlog.get_logger(__name__)

PendingWork = Union["asyncio.Future[Any]", "concurrent.futures.Future[Any]"]


class TaskRunner:
    """Schedule coroutines on one event loop and keep them referenced until done.

    Calls made on the loop thread use ``create_task``; calls from any other
    thread go through ``run_coroutine_threadsafe``. When no loop was given the
    first running loop seen by ``spawn`` is adopted.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._lock = threading.Lock()
        self._pending: Set[PendingWork] = set()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: Optional[str] = None) -> PendingWork:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = running
            loop = self._loop

        if loop is None:
            coro.close()
            raise RuntimeError("No event loop available to run background work")

        if running is loop:
            work: PendingWork = loop.create_task(coro, name=name)
        else:
            work = asyncio.run_coroutine_threadsafe(coro, loop)

        with self._lock:
            self._pending.add(work)
        work.add_done_callback(self._discard)
        return work

    def _discard(self, work: PendingWork) -> None:
        with self._lock:
            self._pending.discard(work)
        if work.cancelled():
            return
        exc = work.exception()
        if exc is not None:
            logger.error("background_task_failed", error=str(exc), exc_info=exc)

    async def drain(self) -> None:
        """Wait until every spawned coroutine (including ones spawned meanwhile) is done."""
        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                return
            awaitables = [
                work if isinstance(work, asyncio.Future) else asyncio.wrap_future(work)
                for work in pending
            ]
            await asyncio.gather(*awaitables, return_exceptions=True)
            with self._lock:
                self._pending.difference_update(pending)
