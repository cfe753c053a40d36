"""
Cache refresh queue.

Refresh services publish a CacheRefreshEvent after their transaction commits.
A single worker drains the queue and runs each refresh action, so a slow
cache rebuild never holds up the scheduler job that published it.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger


@dataclass(frozen=True)
class CacheRefreshEvent:
    """Request to rebuild one cache."""

    cache_name: str
    refresh_action: Callable[[], Awaitable[None]]


class CacheRefreshWorker:
    """
    Consumes CacheRefreshEvents one at a time.

    A second event for a cache whose refresh is still queued is dropped,
    since the queued refresh will read the same committed rows.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[CacheRefreshEvent] = asyncio.Queue(maxsize=maxsize)
        self._pending: set[str] = set()
        self._task: asyncio.Task | None = None
        self.processed = 0
        self.failed = 0

    def publish(self, event: CacheRefreshEvent) -> bool:
        """Enqueue without waiting. Returns False when the event was coalesced or dropped."""
        if event.cache_name in self._pending:
            logger.debug(f"Cache refresh for '{event.cache_name}' already queued")
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                f"Cache refresh queue full, dropping refresh for '{event.cache_name}'"
            )
            return False
        self._pending.add(event.cache_name)
        return True

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            logger.warning("Cache refresh worker is already running")
            return
        self._task = asyncio.create_task(self._run(), name="cache-refresh-worker")
        logger.info("Cache refresh worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache refresh worker stopped")

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            self._pending.discard(event.cache_name)
            try:
                await self._handle(event)
            finally:
                self._queue.task_done()

    async def _handle(self, event: CacheRefreshEvent) -> None:
        try:
            await event.refresh_action()
            self.processed += 1
            logger.debug(f"Cache '{event.cache_name}' refreshed")
        except Exception as e:
            self.failed += 1
            logger.error(f"Cache refresh for '{event.cache_name}' failed: {e}")
