"""
Contest, contest series and meteor shower refresh.
"""

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from nextskip.datasource.contests.calendar import extract_ref
from nextskip.datastore.models import ContestDB, ContestSeriesDB, MeteorShowerDB
from nextskip.datastore.repositories import (
    ContestRepository,
    ContestSeriesRepository,
    MeteorShowerRepository,
)
from nextskip.models.events import Contest, ContestSeries, MeteorShower
from nextskip.refresh.base import RefreshResult, RefreshService


def contest_external_id(contest: Contest) -> str:
    """WA7BNM ref from the details URL, else name and start time."""
    ref = extract_ref(contest.calendar_source_url)
    if ref is not None:
        return ref
    return f"{contest.name}@{contest.start_time.isoformat()}"


def meteor_external_id(shower: MeteorShower) -> str:
    """Shower code plus the year of its peak, e.g. "PER-2025"."""
    return f"{shower.code}-{shower.peak_start.year}"


class ContestRefreshService(RefreshService[list[Contest]]):
    """Upserts contests and drops those that ended more than a day ago."""

    RETENTION = timedelta(days=1)

    @property
    def service_name(self) -> str:
        return "Contest"

    @property
    def source_name(self) -> str:
        return self.fetch_client.source_name

    async def persist(self, session: AsyncSession, batch: list[Contest]) -> RefreshResult:
        repo = ContestRepository(session)
        rows = [
            ContestDB.from_domain(c, self.source_name, contest_external_id(c))
            for c in batch
        ]
        # Keep metadata from already scraped series pages
        series = await ContestSeriesRepository(session).find_by_refs(
            row.external_id for row in rows
        )
        for row in rows:
            if row.external_id in series:
                for name, value in series[row.external_id].contest_fields().items():
                    setattr(row, name, value)
        saved = await repo.upsert(rows)
        deleted = await repo.delete_by_source_ended_before(
            self.source_name, self.now() - self.RETENTION
        )
        return RefreshResult(saved=len(saved), deleted=deleted)

    def success_message(self, result: RefreshResult) -> str:
        return (
            f"Contest refresh complete: {result.saved} contests saved, "
            f"{result.deleted} old records deleted"
        )

    async def needs_initial_load(self) -> bool:
        count = await self._read(
            lambda session: ContestRepository(session).count_by_source(self.source_name)
        )
        return count == 0


class ContestSeriesRefreshService(RefreshService[list[ContestSeries]]):
    """
    Stores scraped series pages and copies their metadata onto contests.

    A series whose revision date matches the stored one is left alone.
    """

    @property
    def service_name(self) -> str:
        return "Contest Series"

    @property
    def source_name(self) -> str:
        return self.fetch_client.source_name

    async def persist(
        self, session: AsyncSession, batch: list[ContestSeries]
    ) -> RefreshResult:
        series_repo = ContestSeriesRepository(session)
        existing = await series_repo.find_by_refs(s.ref for s in batch)

        changed = []
        for series in batch:
            stored = existing.get(series.ref)
            if (
                stored is not None
                and series.revision_date is not None
                and stored.revision_date == series.revision_date
            ):
                continue
            changed.append(ContestSeriesDB.from_domain(series, self.source_name, self.now()))

        saved = await series_repo.upsert(changed)
        contest_repo = ContestRepository(session)
        contests_updated = 0
        for row in saved:
            contests_updated += await contest_repo.apply_series(row)

        return RefreshResult(
            saved=len(saved),
            details={
                "unchanged": len(batch) - len(changed),
                "contests_updated": contests_updated,
            },
        )

    def success_message(self, result: RefreshResult) -> str:
        d = result.details or {}
        return (
            f"Contest series refresh complete: {result.saved} scraped, "
            f"{d.get('unchanged', 0)} unchanged, "
            f"{d.get('contests_updated', 0)} contests updated"
        )

    async def needs_initial_load(self) -> bool:
        count = await self._read(lambda session: ContestSeriesRepository(session).count())
        return count == 0


class MeteorRefreshService(RefreshService[list[MeteorShower]]):
    """Upserts dated showers and drops those whose visibility ended a week ago."""

    RETENTION = timedelta(days=7)

    @property
    def service_name(self) -> str:
        return "Meteor"

    @property
    def source_name(self) -> str:
        return self.fetch_client.source_name

    async def persist(
        self, session: AsyncSession, batch: list[MeteorShower]
    ) -> RefreshResult:
        repo = MeteorShowerRepository(session)
        rows = [
            MeteorShowerDB.from_domain(s, self.source_name, meteor_external_id(s))
            for s in batch
        ]
        saved = await repo.upsert(rows)
        deleted = await repo.delete_by_source_ended_before(
            self.source_name, self.now() - self.RETENTION
        )
        return RefreshResult(saved=len(saved), deleted=deleted)

    def success_message(self, result: RefreshResult) -> str:
        return (
            f"Meteor refresh complete: {result.saved} showers saved, "
            f"{result.deleted} old records deleted"
        )

    async def needs_initial_load(self) -> bool:
        count = await self._read(
            lambda session: MeteorShowerRepository(session).count_by_source(
                self.source_name
            )
        )
        return count == 0
