"""
Base refresh service.

One refresh cycle for a source:
    1. fetch the latest batch (outside any transaction, resilience applied)
    2. persist it and delete this source's expired rows in one transaction
    3. after commit, publish a cache refresh event for the affected cache
    4. log one outcome message

Persistence failures are wrapped in DataRefreshError and re-raised; the
scheduler retries on its next tick.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextskip.datastore.engine import run_in_transaction
from nextskip.services.cache import CacheAsideStore
from nextskip.services.cache_refresh import CacheRefreshEvent, CacheRefreshWorker
from nextskip.services.errors import DataRefreshError
from nextskip.services.resilience import ResilientFetchClient

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RefreshResult:
    """Outcome of one refresh cycle."""

    saved: int = 0
    deleted: int = 0
    skipped: bool = False
    details: dict[str, Any] | None = None


class RefreshService(ABC, Generic[T]):
    """
    Fetch -> persist -> invalidate for one source.

    Subclasses implement `persist` (upsert + source-scoped cleanup) and
    `needs_initial_load`.
    """

    def __init__(
        self,
        fetch_client: ResilientFetchClient[T] | None,
        cache: CacheAsideStore[Any],
        worker: CacheRefreshWorker,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.fetch_client = fetch_client
        self.cache = cache
        self.worker = worker
        self._session_factory = session_factory
        self._clock = clock

    @property
    @abstractmethod
    def service_name(self) -> str: ...

    async def fetch_batch(self) -> T | None:
        return await self.fetch_client.fetch()

    @abstractmethod
    async def persist(self, session: AsyncSession, batch: T) -> RefreshResult:
        """Write the batch and clean up this source's old rows."""
        ...

    @abstractmethod
    async def needs_initial_load(self) -> bool:
        """True when the store holds no recent data for this source."""
        ...

    def success_message(self, result: RefreshResult) -> str:
        return (
            f"{self.service_name} refresh complete: {result.saved} saved, "
            f"{result.deleted} old records deleted"
        )

    async def execute_refresh(self) -> RefreshResult:
        logger.debug(f"Executing {self.service_name} refresh")

        batch = await self.fetch_batch()
        if batch is None:
            logger.warning(f"{self.service_name} refresh skipped: no data available")
            return RefreshResult(skipped=True)

        try:
            result = await run_in_transaction(
                lambda session: self.persist(session, batch), self._session_factory
            )
        except SQLAlchemyError as e:
            raise DataRefreshError(
                self.service_name, f"Database error during refresh: {e}"
            ) from e

        # Committed; readers may now rebuild from the store
        self.worker.publish(CacheRefreshEvent(self.cache.name, self.cache.refresh))
        logger.info(self.success_message(result))
        return result

    async def _read(self, query: Callable[[AsyncSession], Any]) -> Any:
        return await run_in_transaction(query, self._session_factory)

    def now(self) -> datetime:
        return self._clock()
