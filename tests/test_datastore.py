"""Tests for row conversion through SQLite and the transaction helper."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from nextskip.datastore.engine import run_in_transaction
from nextskip.datastore.models import (
    ActivationDB,
    BandConditionDB,
    ContestDB,
    SolarIndicesDB,
    SpotDB,
    to_utc,
)
from nextskip.models import (
    Activation,
    ActivationType,
    BandCondition,
    BandConditionRating,
    Contest,
    FrequencyBand,
    Park,
    SolarIndices,
    Spot,
    Summit,
)
from tests.conftest import NOW


async def store_and_reload(session_factory, row):
    async def save(session):
        session.add(row)

    await run_in_transaction(save, session_factory)

    async def load(session):
        return (await session.scalars(select(type(row)))).one()

    return await run_in_transaction(load, session_factory)


class TestRoundTrip:
    async def test_pota_activation(self, session_factory):
        activation = Activation(
            spot_id="1",
            activator_callsign="W1AW",
            type=ActivationType.POTA,
            frequency=14074.0,
            mode="FT8",
            spotted_at=NOW,
            last_seen_at=NOW + timedelta(minutes=3),
            qso_count=12,
            source="POTA API",
            location=Park(
                reference="US-0001", name="Acadia", region_code="ME", country_code="US",
                grid="FN54ui", latitude=44.35, longitude=-68.21,
            ),
        )
        row = await store_and_reload(session_factory, ActivationDB.from_domain(activation))
        assert row.to_domain() == activation

    async def test_sota_activation(self, session_factory):
        activation = Activation(
            spot_id="9",
            activator_callsign="W7ABC",
            type=ActivationType.SOTA,
            spotted_at=NOW,
            source="SOTA API",
            location=Summit(
                reference="W7W/KG-001", name="Rainier", region_code="WA", association_code="W7W"
            ),
        )
        row = await store_and_reload(session_factory, ActivationDB.from_domain(activation))
        assert row.to_domain() == activation

    async def test_solar_indices(self, session_factory):
        indices = SolarIndices(
            solar_flux_index=150.5, a_index=None, k_index=2, sunspot_number=None,
            timestamp=NOW, source="HamQSL",
        )
        row = await store_and_reload(session_factory, SolarIndicesDB.from_domain(indices))
        assert row.to_domain() == indices

    async def test_band_condition(self, session_factory):
        condition = BandCondition(
            band=FrequencyBand.BAND_15M, rating=BandConditionRating.FAIR, confidence=0.75, notes="day"
        )
        row = await store_and_reload(
            session_factory, BandConditionDB.from_domain(condition, NOW, "HamQSL")
        )
        assert row.to_domain() == condition
        assert to_utc(row.recorded_at) == NOW

    async def test_contest(self, session_factory):
        contest = Contest(
            name="CQ WW DX CW",
            start_time=NOW,
            end_time=NOW + timedelta(hours=48),
            bands=frozenset({"20m", "40m"}),
            modes=frozenset({"CW"}),
            sponsor="CQ",
            official_rules_url="https://cqww.com/rules.htm",
        )
        row = await store_and_reload(
            session_factory, ContestDB.from_domain(contest, "WA7BNM Contest Calendar", "42")
        )
        assert row.to_domain() == contest

    async def test_spot(self, session_factory):
        spot = Spot(
            source="PSKReporter", band="20m", mode="FT8", frequency_hz=14075123, snr=-12,
            spotted_at=NOW, spotter_call="G4XYZ", spotter_grid="JO01ab", spotter_continent="EU",
            spotted_call="K1ABC", spotted_grid="FN31pr", spotted_continent="NA", distance_km=5300,
        )
        row = await store_and_reload(session_factory, SpotDB.from_domain(spot, NOW))
        assert row.to_domain() == spot


class TestTransactions:
    async def test_rollback_on_error(self, session_factory):
        indices = SolarIndices(solar_flux_index=100.0, timestamp=NOW, source="NOAA SWPC")

        async def work(session):
            session.add(SolarIndicesDB.from_domain(indices))
            await session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_in_transaction(work, session_factory)

        count = await run_in_transaction(
            lambda s: s.scalar(select(func.count(SolarIndicesDB.id))), session_factory
        )
        assert count == 0


def test_to_utc():
    naive = datetime(2025, 8, 12, 12, 0)
    offset = datetime(2025, 8, 12, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert to_utc(naive) == NOW
    assert to_utc(offset).tzinfo == timezone.utc
    assert to_utc(offset) == NOW
    assert to_utc(None) is None
