"""
Solar indices and band condition refresh.
"""

from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from nextskip.datastore.models import BandConditionDB, SolarIndicesDB
from nextskip.datastore.repositories import (
    BandConditionRepository,
    SolarIndicesRepository,
)
from nextskip.models.propagation import BandCondition, SolarIndices
from nextskip.refresh.base import RefreshResult, RefreshService


class SolarIndicesRefreshService(RefreshService[SolarIndices]):
    """
    Upserts one snapshot by (source, timestamp).

    `stored_source` is the source label written on the rows ("NOAA SWPC",
    "HamQSL"), which retention and the initial-load check filter on.
    """

    RETENTION = timedelta(days=7)
    INITIAL_LOAD_WINDOW = timedelta(minutes=60)

    def __init__(self, label: str, stored_source: str, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._label = label
        self.stored_source = stored_source

    @property
    def service_name(self) -> str:
        return self._label

    async def persist(self, session: AsyncSession, batch: SolarIndices) -> RefreshResult:
        repo = SolarIndicesRepository(session)
        saved = await repo.upsert([SolarIndicesDB.from_domain(batch)])
        deleted = await repo.delete_by_source_older_than(
            self.stored_source, self.now() - self.RETENTION
        )
        return RefreshResult(
            saved=len(saved),
            deleted=deleted,
            details={
                "sfi": batch.solar_flux_index,
                "k": batch.k_index,
                "a": batch.a_index,
                "sunspots": batch.sunspot_number,
            },
        )

    def success_message(self, result: RefreshResult) -> str:
        d = result.details or {}
        return (
            f"{self.service_name} refresh complete: SFI={d.get('sfi')}, "
            f"K={d.get('k')}, A={d.get('a')}, Sunspots={d.get('sunspots')}"
        )

    async def needs_initial_load(self) -> bool:
        since = self.now() - self.INITIAL_LOAD_WINDOW
        has_recent = await self._read(
            lambda session: SolarIndicesRepository(session).exists_for_source_since(
                self.stored_source, since
            )
        )
        return not has_recent


class BandConditionRefreshService(RefreshService[list[BandCondition]]):
    """Inserts one row per band per cycle; keeps a day of history."""

    RETENTION = timedelta(days=1)
    INITIAL_LOAD_WINDOW = timedelta(minutes=60)
    STORED_SOURCE = "HamQSL"

    @property
    def service_name(self) -> str:
        return "HamQSL Band"

    async def persist(
        self, session: AsyncSession, batch: list[BandCondition]
    ) -> RefreshResult:
        now = self.now()
        repo = BandConditionRepository(session)
        await repo.save_all(
            [BandConditionDB.from_domain(c, now, self.STORED_SOURCE) for c in batch]
        )
        deleted = await repo.delete_by_source_older_than(
            self.STORED_SOURCE, now - self.RETENTION
        )
        return RefreshResult(saved=len(batch), deleted=deleted)

    def success_message(self, result: RefreshResult) -> str:
        return (
            f"HamQSL band refresh complete: {result.saved} band conditions saved, "
            f"{result.deleted} old records deleted"
        )

    async def needs_initial_load(self) -> bool:
        since = self.now() - self.INITIAL_LOAD_WINDOW
        has_recent = await self._read(
            lambda session: BandConditionRepository(session).exists_for_source_since(
                self.STORED_SOURCE, since
            )
        )
        return not has_recent
