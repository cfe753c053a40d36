"""Tests for the refresh services, repositories and cache loaders against SQLite."""

from datetime import date, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from nextskip.dashboard.loaders import CacheLoaders
from nextskip.datastore.engine import run_in_transaction
from nextskip.datastore.models import ActivationDB
from nextskip.datastore.repositories import (
    ActivationRepository,
    ContestRepository,
    ContestSeriesRepository,
    MeteorShowerRepository,
    SolarIndicesRepository,
)
from nextskip.models import (
    Activation,
    ActivationType,
    BandCondition,
    BandConditionRating,
    Contest,
    ContestSeries,
    FrequencyBand,
    MeteorShower,
    Park,
    SolarIndices,
    Summit,
)
from nextskip.refresh.activations import ActivationRefreshService
from nextskip.refresh.events import (
    ContestRefreshService,
    ContestSeriesRefreshService,
    MeteorRefreshService,
    contest_external_id,
    meteor_external_id,
)
from nextskip.refresh.propagation import (
    BandConditionRefreshService,
    SolarIndicesRefreshService,
)
from nextskip.services.cache import CacheAsideStore
from nextskip.services.errors import DataRefreshError, ExternalApiError
from tests.conftest import NOW, FakeSource, make_cache, make_client


def activation(spot_id: str, minutes_ago: int, source: str = "POTA API") -> Activation:
    is_pota = source == "POTA API"
    return Activation(
        spot_id=spot_id,
        activator_callsign=f"K{spot_id}ABC",
        type=ActivationType.POTA if is_pota else ActivationType.SOTA,
        frequency=14062.0,
        mode="CW",
        spotted_at=NOW - timedelta(minutes=minutes_ago),
        source=source,
        location=(
            Park(reference="US-0001", name="Acadia", region_code="ME", country_code="US")
            if is_pota
            else Summit(reference="W7W/KG-001", name="Rainier", association_code="W7W")
        ),
    )


async def insert_activations(session_factory, *activations: Activation) -> None:
    await run_in_transaction(
        lambda s: ActivationRepository(s).upsert([ActivationDB.from_domain(a) for a in activations]),
        session_factory,
    )


async def count(session_factory, repo_cls, source: str) -> int:
    return await run_in_transaction(
        lambda s: repo_cls(s).count_by_source(source), session_factory
    )


def pota_service(results, clock, worker, session_factory, cache=None) -> ActivationRefreshService:
    return ActivationRefreshService(
        "POTA",
        make_client(FakeSource("POTA API", results=results), clock),
        cache or make_cache("activations", clock=clock),
        worker,
        session_factory=session_factory,
        clock=clock,
    )


class TestActivationRefresh:
    async def test_refresh_is_idempotent(self, clock, worker, session_factory):
        batch = [activation("1", 2), activation("2", 10)]
        service = pota_service([batch], clock, worker, session_factory)

        first = await service.execute_refresh()
        second = await service.execute_refresh()

        assert first.saved == second.saved == 2
        assert await count(session_factory, ActivationRepository, "POTA API") == 2

    async def test_upsert_updates_existing_row(self, clock, worker, session_factory):
        updated = activation("1", 0).model_copy(update={"qso_count": 25})
        service = pota_service([[activation("1", 5)], [updated]], clock, worker, session_factory)

        await service.execute_refresh()
        await service.execute_refresh()

        rows = await run_in_transaction(
            lambda s: ActivationRepository(s).find_by_source_and_spot_ids("POTA API", ["1"]),
            session_factory,
        )
        assert len(rows) == 1
        assert rows[0].qso_count == 25
        assert rows[0].to_domain().spotted_at == NOW

    async def test_retention_only_touches_own_source(self, clock, worker, session_factory):
        await insert_activations(
            session_factory,
            activation("old", 180),
            activation("sota-old", 180, source="SOTA API"),
        )
        service = pota_service([[activation("new", 1)]], clock, worker, session_factory)

        result = await service.execute_refresh()

        assert result.deleted == 1
        assert await count(session_factory, ActivationRepository, "POTA API") == 1
        assert await count(session_factory, ActivationRepository, "SOTA API") == 1

    async def test_missing_batch_is_skipped(self, clock, worker, session_factory):
        service = pota_service([ExternalApiError("down")], clock, worker, session_factory)
        result = await service.execute_refresh()

        assert result.skipped
        assert await count(session_factory, ActivationRepository, "POTA API") == 0

    async def test_database_error_is_wrapped(self, clock, worker, session_factory):
        class BrokenService(ActivationRefreshService):
            async def persist(self, session, batch):
                raise SQLAlchemyError("disk I/O error")

        cache = make_cache("activations", clock=clock)
        service = BrokenService(
            "POTA",
            make_client(FakeSource("POTA API", results=[[activation("1", 1)]]), clock),
            cache,
            worker,
            session_factory=session_factory,
            clock=clock,
        )

        with pytest.raises(DataRefreshError, match="POTA refresh failed"):
            await service.execute_refresh()
        await worker.join()
        assert cache.get_stats().refreshes == 0

    async def test_commit_triggers_cache_rebuild(self, clock, worker, session_factory):
        loaders = CacheLoaders(session_factory, clock)
        cache = CacheAsideStore("activations", loaders.load_activations, timedelta(minutes=10), clock=clock)
        service = pota_service(
            [[activation("1", 2), activation("2", 30)]], clock, worker, session_factory, cache
        )

        await service.execute_refresh()
        await worker.join()

        summary = cache.peek()
        assert summary.pota_count == 2
        # Newest first
        assert [a.spot_id for a in summary.pota_activations] == ["1", "2"]
        assert summary.last_updated == NOW

    async def test_needs_initial_load(self, clock, worker, session_factory):
        service = pota_service([[activation("1", 1)]], clock, worker, session_factory)
        assert await service.needs_initial_load()

        await service.execute_refresh()
        assert not await service.needs_initial_load()

        clock.advance(minutes=10)
        assert await service.needs_initial_load()


class TestSolarRefresh:
    def service(self, label, stored_source, snapshot, clock, worker, session_factory):
        return SolarIndicesRefreshService(
            label,
            stored_source,
            make_client(FakeSource(label, results=[snapshot]), clock),
            make_cache("solarIndices", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )

    async def test_snapshot_upserted_by_timestamp(self, clock, worker, session_factory):
        snapshot = SolarIndices(
            solar_flux_index=150.0, sunspot_number=120, timestamp=NOW - timedelta(hours=2),
            source=SolarIndices.NOAA_SOURCE,
        )
        service = self.service("NOAA", SolarIndices.NOAA_SOURCE, snapshot, clock, worker, session_factory)

        await service.execute_refresh()
        await service.execute_refresh()

        assert await count(session_factory, SolarIndicesRepository, "NOAA SWPC") == 1
        # A snapshot older than the initial load window does not count as recent
        assert await service.needs_initial_load()

    async def test_loader_merges_latest_snapshots(self, clock, worker, session_factory):
        noaa = SolarIndices(
            solar_flux_index=150.0, sunspot_number=120, timestamp=NOW - timedelta(days=1),
            source=SolarIndices.NOAA_SOURCE,
        )
        hamqsl = SolarIndices(
            solar_flux_index=148.0, k_index=2, a_index=7, sunspot_number=110,
            timestamp=NOW, source=SolarIndices.HAMQSL_SOURCE,
        )
        await self.service("NOAA", "NOAA SWPC", noaa, clock, worker, session_factory).execute_refresh()
        await self.service("HamQSL Solar", "HamQSL", hamqsl, clock, worker, session_factory).execute_refresh()

        merged = await CacheLoaders(session_factory, clock).load_solar_indices()

        assert merged.solar_flux_index == 150.0
        assert merged.sunspot_number == 120
        assert merged.k_index == 2
        assert merged.a_index == 7
        assert merged.timestamp == NOW

    async def test_loader_with_empty_store(self, clock, session_factory):
        assert await CacheLoaders(session_factory, clock).load_solar_indices() is None


class TestBandConditionRefresh:
    async def test_latest_condition_per_band(self, clock, worker, session_factory):
        first = [
            BandCondition(band=FrequencyBand.BAND_20M, rating=BandConditionRating.FAIR),
            BandCondition(band=FrequencyBand.BAND_40M, rating=BandConditionRating.POOR),
        ]
        second = [BandCondition(band=FrequencyBand.BAND_20M, rating=BandConditionRating.GOOD)]
        service = BandConditionRefreshService(
            make_client(FakeSource("HamQSL Band", results=[first, second]), clock),
            make_cache("bandConditions", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )

        await service.execute_refresh()
        clock.advance(minutes=30)
        await service.execute_refresh()

        conditions = await CacheLoaders(session_factory, clock).load_band_conditions()

        assert [(c.band, c.rating) for c in conditions] == [
            (FrequencyBand.BAND_40M, BandConditionRating.POOR),
            (FrequencyBand.BAND_20M, BandConditionRating.GOOD),
        ]

        clock.advance(hours=2)
        assert await CacheLoaders(session_factory, clock).load_band_conditions() == []


class TestEventRefresh:
    async def test_contests_upserted_by_external_id(self, clock, worker, session_factory):
        running = Contest(
            name="CQ WW DX",
            start_time=NOW - timedelta(hours=2),
            end_time=NOW + timedelta(hours=22),
            calendar_source_url="https://www.contestcalendar.com/contestdetails.php?ref=77",
        )
        finished = Contest(
            name="Sprint", start_time=NOW - timedelta(days=3), end_time=NOW - timedelta(days=2)
        )
        service = ContestRefreshService(
            make_client(FakeSource("WA7BNM Contest Calendar", results=[[running, finished]]), clock),
            make_cache("contests", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )
        assert await service.needs_initial_load()

        await service.execute_refresh()
        await service.execute_refresh()

        # The finished contest is past retention and removed in the same transaction
        assert await count(session_factory, ContestRepository, "WA7BNM Contest Calendar") == 1
        contests = await CacheLoaders(session_factory, clock).load_contests()
        assert [c.name for c in contests] == ["CQ WW DX"]
        assert not await service.needs_initial_load()

    def test_contest_external_id(self):
        with_ref = Contest(
            name="A", start_time=NOW, end_time=NOW,
            calendar_source_url="https://www.contestcalendar.com/contestdetails.php?ref=8",
        )
        without_ref = Contest(name="B", start_time=NOW, end_time=NOW)

        assert contest_external_id(with_ref) == "8"
        assert contest_external_id(without_ref) == f"B@{NOW.isoformat()}"

    async def test_series_metadata_copied_onto_contests(self, clock, worker, session_factory):
        contest = Contest(
            name="CQ WW DX",
            start_time=NOW + timedelta(days=2),
            end_time=NOW + timedelta(days=4),
            calendar_source_url="https://www.contestcalendar.com/contestdetails.php?ref=77",
        )
        series = ContestSeries(
            ref="77",
            name="CQ World Wide DX Contest, CW",
            bands=frozenset({"40m", "20m"}),
            modes=frozenset({"CW"}),
            sponsor="CQ Magazine",
            official_rules_url="https://www.cqww.com/rules.htm",
            revision_date=date(2025, 3, 5),
        )
        contests = ContestRefreshService(
            make_client(FakeSource("WA7BNM Contest Calendar", results=[[contest]]), clock),
            make_cache("contests", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )
        series_service = ContestSeriesRefreshService(
            make_client(FakeSource("WA7BNM Contest Series", results=[[series]]), clock),
            make_cache("contests", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )
        await contests.execute_refresh()
        assert await series_service.needs_initial_load()

        first = await series_service.execute_refresh()
        second = await series_service.execute_refresh()

        assert first.saved == 1
        assert first.details == {"unchanged": 0, "contests_updated": 1}
        assert second.saved == 0
        assert second.details == {"unchanged": 1, "contests_updated": 0}
        assert not await series_service.needs_initial_load()

        # A later calendar refresh carries no series fields of its own
        await contests.execute_refresh()

        [loaded] = await CacheLoaders(session_factory, clock).load_contests()
        assert loaded.bands == frozenset({"40m", "20m"})
        assert loaded.modes == frozenset({"CW"})
        assert loaded.sponsor == "CQ Magazine"
        assert loaded.official_rules_url == "https://www.cqww.com/rules.htm"

    async def test_series_without_revision_date_is_rescraped(self, clock, worker, session_factory):
        series = ContestSeries(ref="8", name="Sprint")
        service = ContestSeriesRefreshService(
            make_client(FakeSource("WA7BNM Contest Series", results=[[series]]), clock),
            make_cache("contests", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )

        await service.execute_refresh()
        result = await service.execute_refresh()

        assert result.saved == 1
        async def load(session):
            stored = await ContestSeriesRepository(session).find_by_refs(["8"])
            return stored["8"].to_domain()

        assert await run_in_transaction(load, session_factory) == series

    async def test_meteor_showers(self, clock, worker, session_factory):
        shower = MeteorShower(
            name="Perseids 2025",
            code="PER",
            peak_start=NOW - timedelta(hours=12),
            peak_end=NOW + timedelta(hours=36),
            visibility_start=NOW - timedelta(days=25),
            visibility_end=NOW + timedelta(days=12),
            peak_zhr=100,
        )
        service = MeteorRefreshService(
            make_client(FakeSource("IMO Meteor Calendar", results=[[shower]]), clock),
            make_cache("meteorShowers", clock=clock),
            worker,
            session_factory=session_factory,
            clock=clock,
        )

        await service.execute_refresh()
        await service.execute_refresh()

        assert meteor_external_id(shower) == "PER-2025"
        assert await count(session_factory, MeteorShowerRepository, "IMO Meteor Calendar") == 1
        showers = await CacheLoaders(session_factory, clock).load_meteor_showers()
        assert showers == [shower]
