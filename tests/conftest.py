"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextskip.datasource.base import BaseDataSource
from nextskip.datastore import engine as db_engine
from nextskip.scheduler.coordinator import RefreshScheduler
from nextskip.services.cache import CacheAsideStore
from nextskip.services.cache_refresh import CacheRefreshWorker
from nextskip.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from nextskip.services.resilience import ResilientFetchClient
from nextskip.services.retry import RetryConfig

NOW = datetime(2025, 8, 12, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by the components under test."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeSource(BaseDataSource[Any]):
    """
    Source that replays scripted results.

    Each entry in `results` is returned in turn; exceptions are raised.
    The last entry repeats once the script runs out.
    """

    def __init__(
        self,
        name: str = "Fake API",
        results: list[Any] | None = None,
        default: Any = None,
        interval: timedelta = timedelta(minutes=1),
    ):
        self.client = None
        self.name = name
        self.results = list(results or [])
        self.default = default
        self.interval = interval
        self.calls = 0

    @property
    def source_name(self) -> str:
        return self.name

    @property
    def refresh_interval(self) -> timedelta:
        return self.interval

    async def fetch(self) -> Any:
        self.calls += 1
        index = min(self.calls - 1, len(self.results) - 1)
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result

    def default_value(self) -> Any:
        return self.default


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed SQLite database, created fresh for each test."""
    await db_engine.init_db(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    yield db_engine.get_session_factory()
    await db_engine.close_db()


@pytest.fixture
async def worker() -> AsyncGenerator[CacheRefreshWorker, None]:
    worker = CacheRefreshWorker()
    worker.start()
    yield worker
    await worker.stop()


@pytest.fixture
async def scheduler(clock) -> AsyncGenerator[RefreshScheduler, None]:
    """Refresh scheduler on the test clock; tests start it paused."""
    scheduler = RefreshScheduler(AsyncIOScheduler(timezone=timezone.utc), clock=clock)
    yield scheduler
    scheduler.stop()


def make_client(
    source: FakeSource,
    clock: FakeClock,
    breaker_config: CircuitBreakerConfig | None = None,
    max_attempts: int = 1,
) -> ResilientFetchClient[Any]:
    """Fetch client with no retry wait, for fast tests."""
    return ResilientFetchClient(
        source,
        CircuitBreaker(source.source_name, breaker_config, clock=clock),
        retry_config=RetryConfig(max_attempts=max_attempts, wait_seconds=0, max_wait_seconds=0),
        clock=clock,
    )


def make_cache(name: str, value: Any = None, clock: FakeClock | None = None) -> CacheAsideStore[Any]:
    async def loader() -> Any:
        return value

    return CacheAsideStore(name, loader, timedelta(minutes=10), clock=clock or FakeClock())


class FakeRefreshService:
    """Refresh service stand-in with a scripted outcome."""

    def __init__(
        self,
        cold: bool = True,
        error: Exception | None = None,
        check_error: Exception | None = None,
        fetch_client: ResilientFetchClient[Any] | None = None,
    ):
        self.fetch_client = fetch_client
        self.cold = cold
        self.error = error
        self.check_error = check_error
        self.refreshes = 0

    async def execute_refresh(self):
        self.refreshes += 1
        if self.error is not None:
            raise self.error

    async def needs_initial_load(self) -> bool:
        if self.check_error is not None:
            raise self.check_error
        return self.cold
