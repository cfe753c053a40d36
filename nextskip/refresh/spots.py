"""
Band activity aggregation and spot housekeeping.

Spots are written by the stream processor, not by a fetch client, so the
band activity refresh only recomputes the rollup and refreshes its cache.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextskip.datastore.engine import run_in_transaction
from nextskip.datastore.models import SpotDB, to_utc
from nextskip.datastore.repositories import SpotRepository
from nextskip.models.spots import BandActivity, ContinentPath, ModeWindow
from nextskip.refresh.base import RefreshResult, RefreshService
from nextskip.services.cache import CacheAsideStore
from nextskip.services.cache_refresh import CacheRefreshWorker
from nextskip.services.errors import DataRefreshError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BandActivityAggregator:
    """
    Rolls raw spots up into one BandActivity per band.

    The primary mode is the most common mode over the last 30 minutes; its
    ModeWindow sets the current window and the baseline averaged over the
    preceding windows.
    """

    MIN_SPOTS_FOR_ACTIVE_PATH = 5
    ACTIVITY_LOOKBACK = timedelta(hours=2)
    MODE_DETECTION_WINDOW = timedelta(minutes=30)
    DEFAULT_MODE = "FT8"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def aggregate_all_bands(self) -> dict[str, BandActivity]:
        return await run_in_transaction(self._aggregate_all, self._session_factory)

    async def aggregate_band(self, band: str) -> BandActivity:
        return await run_in_transaction(
            lambda session: self._aggregate(SpotRepository(session), band, self._clock()),
            self._session_factory,
        )

    async def _aggregate_all(self, session: AsyncSession) -> dict[str, BandActivity]:
        now = self._clock()
        repo = SpotRepository(session)
        bands = await repo.find_bands_with_spots_since(now - self.ACTIVITY_LOOKBACK)
        logger.info(f"Aggregating activity for {len(bands)} bands with recent activity")

        result = {}
        for band in bands:
            result[band] = await self._aggregate(repo, band, now)
        return result

    async def _aggregate(
        self, repo: SpotRepository, band: str, now: datetime
    ) -> BandActivity:
        earliest = now - max(
            self.ACTIVITY_LOOKBACK,
            ModeWindow.SSB.baseline_window,
            self.MODE_DETECTION_WINDOW,
        )
        spots = await repo.find_by_band_since(band, earliest)

        mode = self._primary_mode(spots, now)
        window = ModeWindow.for_mode(mode)
        window_start = now - window.current_window

        current = [s for s in spots if to_utc(s.spotted_at) > window_start]
        baseline = self._baseline(spots, window, now)

        max_dx = max(
            (s for s in current if s.distance_km is not None),
            key=lambda s: s.distance_km,
            default=None,
        )

        return BandActivity(
            band=band,
            mode=mode,
            spot_count=len(current),
            baseline_spot_count=baseline,
            trend_percentage=self._trend(len(current), baseline),
            max_dx_km=max_dx.distance_km if max_dx else None,
            max_dx_path=self._format_dx_path(max_dx) if max_dx else None,
            active_paths=self._active_paths(current),
            window_start=window_start,
            window_end=now,
            calculated_at=now,
        )

    def _primary_mode(self, spots: list[SpotDB], now: datetime) -> str:
        since = now - self.MODE_DETECTION_WINDOW
        modes = Counter(s.mode for s in spots if to_utc(s.spotted_at) > since)
        if not modes:
            return self.DEFAULT_MODE
        return modes.most_common(1)[0][0]

    def _baseline(self, spots: list[SpotDB], window: ModeWindow, now: datetime) -> int:
        """Mean spot count over the windows preceding the current one."""
        count = window.baseline_window_count
        if count <= 1:
            return 0

        current = window.current_window
        total = 0
        for i in range(1, count):
            end = now - current * i
            start = end - current
            total += sum(1 for s in spots if start < to_utc(s.spotted_at) <= end)
        return total // (count - 1)

    @staticmethod
    def _trend(current: int, baseline: int) -> float:
        if baseline == 0:
            return 100.0 if current > 0 else 0.0
        return (current - baseline) / baseline * 100.0

    def _active_paths(self, spots: list[SpotDB]) -> frozenset[ContinentPath]:
        pairs = Counter(
            (s.spotter_continent, s.spotted_continent)
            for s in spots
            if s.spotter_continent and s.spotted_continent
        )
        active = set()
        for (a, b), n in pairs.items():
            if n < self.MIN_SPOTS_FOR_ACTIVE_PATH:
                continue
            path = ContinentPath.from_continents(a, b)
            if path is not None:
                active.add(path)
        return frozenset(active)

    @staticmethod
    def _format_dx_path(spot: SpotDB) -> str | None:
        if not spot.spotted_call or not spot.spotter_call:
            return None
        return f"{spot.spotted_call.upper()} → {spot.spotter_call.upper()}"


class BandActivityRefreshService(RefreshService[dict[str, BandActivity]]):
    """Recomputes band activity and refreshes its cache; writes nothing."""

    INITIAL_LOAD_WINDOW = timedelta(minutes=5)

    def __init__(
        self,
        aggregator: BandActivityAggregator,
        cache: CacheAsideStore,
        worker: CacheRefreshWorker,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(None, cache, worker, session_factory, clock)
        self.aggregator = aggregator

    @property
    def service_name(self) -> str:
        return "Band Activity"

    async def fetch_batch(self) -> dict[str, BandActivity]:
        try:
            return await self.aggregator.aggregate_all_bands()
        except SQLAlchemyError as e:
            raise DataRefreshError(
                self.service_name, f"Database error during aggregation: {e}"
            ) from e

    async def persist(
        self, session: AsyncSession, batch: dict[str, BandActivity]
    ) -> RefreshResult:
        return RefreshResult(
            details={
                "bands": len(batch),
                "spots": sum(a.spot_count for a in batch.values()),
            }
        )

    def success_message(self, result: RefreshResult) -> str:
        d = result.details or {}
        return (
            f"Band activity refresh complete: {d.get('bands', 0)} bands, "
            f"{d.get('spots', 0)} total spots"
        )

    async def needs_initial_load(self) -> bool:
        """Spots are flowing, so there is something to aggregate."""
        since = self.now() - self.INITIAL_LOAD_WINDOW
        count = await self._read(
            lambda session: SpotRepository(session).count_created_since(since)
        )
        return count > 0


class SpotCleanupService:
    """Deletes spots past their time-to-live in batches."""

    BATCH_SIZE = 10000

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = ttl
        self._session_factory = session_factory
        self._clock = clock

    async def execute_cleanup(self) -> int:
        cutoff = self._clock() - self.ttl
        logger.debug(f"Cleaning up spots older than {cutoff.isoformat()}")
        deleted = await run_in_transaction(
            lambda session: SpotRepository(session).delete_created_before(
                cutoff, self.BATCH_SIZE
            ),
            self._session_factory,
        )
        if deleted > 0:
            logger.info(f"Spot cleanup complete: deleted {deleted} spots older than {self.ttl}")
        else:
            logger.debug("Spot cleanup complete: no expired spots found")
        return deleted
