"""
Spot stream processor.

A transport (e.g. an MQTT subscription) hands raw messages to `offer()`.
Messages are buffered in a bounded queue that drops the oldest message when
full, parsed and enriched, and persisted in batches.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextskip.datasource.spots.pskreporter import parse_message
from nextskip.datastore.engine import run_in_transaction
from nextskip.datastore.models import SpotDB
from nextskip.datastore.repositories import SpotRepository
from nextskip.models.spots import Spot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpotStreamProcessor:
    """
    Usage:
        processor = SpotStreamProcessor()
        processor.start()
        processor.offer('{"b": "20m", "md": "FT8", "t": 1735689600}')
        await processor.stop()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        batch_size: int = 100,
        batch_timeout: float = 1.0,
        buffer_size: int = 10000,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout
        self._queue: asyncio.Queue[str | bytes] = asyncio.Queue(maxsize=buffer_size)
        self._clock = clock
        self._task: asyncio.Task | None = None
        # Messages taken off the queue but not yet parsed
        self._pending: list[str | bytes] = []

        self.spots_processed = 0
        self.batches_persisted = 0
        self.dropped_messages = 0
        self.last_message_at: datetime | None = None

    @property
    def connected(self) -> bool:
        return self._task is not None and not self._task.done()

    def offer(self, message: str | bytes) -> bool:
        """Buffer a raw message. Returns False when an older message was dropped."""
        self.last_message_at = self._clock()
        dropped = False
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped_messages += 1
            dropped = True
        self._queue.put_nowait(message)
        return not dropped

    def start(self) -> None:
        if self.connected:
            return
        logger.info(
            f"Starting spot stream processor (batch_size={self.batch_size}, "
            f"timeout={self.batch_timeout}s, buffer={self._queue.maxsize})"
        )
        self._task = asyncio.create_task(self._run(), name="spot-stream")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        # Persist whatever is still in flight or buffered
        remaining = self._drain(self._queue.qsize())
        if remaining:
            await self._persist(remaining)
        logger.info(
            f"Spot stream processor stopped: {self.spots_processed} spots processed, "
            f"{self.batches_persisted} batches persisted, "
            f"{self.dropped_messages} messages dropped"
        )

    async def _run(self) -> None:
        while True:
            batch = await self._next_batch()
            if not batch:
                continue
            try:
                await self._persist(batch)
            except Exception as e:
                logger.error(f"Error persisting batch of {len(batch)} spots: {e}")

    async def _next_batch(self) -> list[Spot]:
        """Wait for the first message, then collect until full or timed out."""
        messages = self._pending
        messages.append(await self._queue.get())
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.batch_timeout
        while len(messages) < self.batch_size:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                messages.append(await asyncio.wait_for(self._queue.get(), remaining))
            except asyncio.TimeoutError:
                break
        self._pending = []
        return self._parse(messages)

    def _drain(self, count: int) -> list[Spot]:
        messages, self._pending = self._pending, []
        for _ in range(count):
            messages.append(self._queue.get_nowait())
        return self._parse(messages)

    def _parse(self, messages: list[str | bytes]) -> list[Spot]:
        spots = [s for s in (parse_message(m) for m in messages) if s is not None]
        self.spots_processed += len(spots)
        return spots

    async def _persist(self, spots: list[Spot]) -> None:
        created_at = self._clock()

        async def work(session: AsyncSession) -> None:
            rows = [SpotDB.from_domain(spot, created_at) for spot in spots]
            await SpotRepository(session).save_all(rows)

        try:
            await run_in_transaction(work, self._session_factory)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist batch of {len(spots)} spots: {e}")
            return
        self.batches_persisted += 1
        logger.debug(f"Persisted batch of {len(spots)} spots")
