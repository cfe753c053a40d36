"""
Cache loaders - rebuild each dashboard cache from the database.

Each loader runs its queries in its own read transaction and returns a
complete snapshot for its cache.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nextskip.datastore.engine import run_in_transaction
from nextskip.datastore.repositories import (
    ActivationRepository,
    BandConditionRepository,
    ContestRepository,
    MeteorShowerRepository,
    SolarIndicesRepository,
)
from nextskip.models.activations import ActivationsSummary, ActivationType
from nextskip.models.events import Contest, MeteorShower
from nextskip.models.propagation import BandCondition, SolarIndices, merge_solar_indices


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheLoaders:
    ACTIVATION_LOOKBACK = timedelta(hours=2)
    BAND_CONDITION_LOOKBACK = timedelta(hours=1)

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def _run(self, work):
        return await run_in_transaction(work, self._session_factory)

    async def load_activations(self) -> ActivationsSummary:
        """Activations spotted in the last two hours, newest first, split by program."""
        since = self._clock() - self.ACTIVATION_LOOKBACK

        async def work(session: AsyncSession) -> ActivationsSummary:
            rows = await ActivationRepository(session).find_spotted_since(since)
            activations = [row.to_domain() for row in rows]
            return ActivationsSummary(
                pota_activations=[a for a in activations if a.type == ActivationType.POTA],
                sota_activations=[a for a in activations if a.type == ActivationType.SOTA],
                last_updated=self._clock(),
            )

        return await self._run(work)

    async def load_solar_indices(self) -> SolarIndices | None:
        """Latest NOAA and HamQSL snapshots merged field by field."""

        async def work(session: AsyncSession) -> SolarIndices | None:
            repo = SolarIndicesRepository(session)
            noaa = await repo.find_latest_by_source(SolarIndices.NOAA_SOURCE)
            hamqsl = await repo.find_latest_by_source(SolarIndices.HAMQSL_SOURCE)
            return merge_solar_indices(
                noaa.to_domain() if noaa else None,
                hamqsl.to_domain() if hamqsl else None,
            )

        return await self._run(work)

    async def load_band_conditions(self) -> list[BandCondition]:
        since = self._clock() - self.BAND_CONDITION_LOOKBACK

        async def work(session: AsyncSession) -> list[BandCondition]:
            rows = await BandConditionRepository(session).find_latest_per_band(since)
            conditions = [row.to_domain() for row in rows]
            conditions.sort(key=lambda c: c.band.start_khz)
            return conditions

        return await self._run(work)

    async def load_contests(self) -> list[Contest]:
        now = self._clock()

        async def work(session: AsyncSession) -> list[Contest]:
            rows = await ContestRepository(session).find_ending_after(now)
            return [row.to_domain() for row in rows]

        return await self._run(work)

    async def load_meteor_showers(self) -> list[MeteorShower]:
        now = self._clock()

        async def work(session: AsyncSession) -> list[MeteorShower]:
            rows = await MeteorShowerRepository(session).find_visible_at(now)
            return [row.to_domain() for row in rows]

        return await self._run(work)
