"""Tests for application wiring."""

from datetime import timedelta

import pytest

from nextskip.app import SourceSet, build_application
from nextskip.models import Activation, ActivationType, Park
from nextskip.settings import Settings
from tests.conftest import NOW, FakeSource


def sources(pota_results) -> SourceSet:
    return SourceSet(
        pota=FakeSource("POTA API", results=pota_results, default=[]),
        sota=FakeSource("SOTA API", results=[[]], default=[]),
        noaa=FakeSource("NOAA SWPC", results=[None]),
        hamqsl_solar=FakeSource("HamQSL Solar", results=[None]),
        hamqsl_band=FakeSource("HamQSL Band", results=[[]], default=[]),
        contests=FakeSource("WA7BNM Contest Calendar", results=[[]], default=[]),
        contest_series=FakeSource("WA7BNM Contest Series", results=[[]], default=[]),
        meteors=FakeSource("IMO Meteor Calendar", results=[[]], default=[]),
    )


@pytest.fixture
def activation() -> Activation:
    return Activation(
        spot_id="7",
        activator_callsign="N0CALL",
        type=ActivationType.POTA,
        frequency=7030.0,
        mode="CW",
        spotted_at=NOW - timedelta(minutes=1),
        source="POTA API",
        location=Park(reference="US-1234", name="Rocky Mountain"),
    )


class TestApplication:
    def test_registers_every_refresh_task(self, clock):
        app = build_application(
            settings=Settings(), sources=sources([[]]), clock=clock
        )

        feed_ids = {status.id for status in app.feeds.get_all_feed_statuses()}

        assert feed_ids == {
            "pota",
            "sota",
            "noaa",
            "hamqsl-solar",
            "hamqsl-band",
            "contests",
            "contest-series",
            "meteors",
            "band-activity",
            "pskreporter-spots",
        }
        assert app.scheduler.scheduler.get_job("spot-cleanup") is not None

    def test_spots_disabled(self, clock):
        app = build_application(
            settings=Settings(spots_enabled=False), sources=sources([[]]), clock=clock
        )

        assert app.spot_stream is None
        assert app.scheduler.get_coordinator("band-activity") is None
        assert app.scheduler.scheduler.get_job("spot-cleanup") is None

    async def test_refresh_reaches_dashboard(self, clock, session_factory, activation):
        app = build_application(
            settings=Settings(spots_enabled=False),
            sources=sources([[activation]]),
            session_factory=session_factory,
            clock=clock,
        )
        app.worker.start()
        try:
            await app.scheduler.get_coordinator("pota").run()
            await app.worker.join()
            payload = await app.dashboard.get_activations()
        finally:
            await app.worker.stop()

        assert payload["data"]["total_count"] == 1
        assert payload["data"]["pota"][0]["activator_callsign"] == "N0CALL"
        assert [f["source"] for f in payload["freshness"]] == ["POTA API", "SOTA API"]
        assert app.feeds.get_feed_status("pota").healthy
