"""Tests for the dashboard HTTP API."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from nextskip.dashboard.feed_status import FeedStatusService, SpotStreamStatus
from nextskip.dashboard.server import create_dashboard_app
from nextskip.dashboard.service import (
    ACTIVATIONS,
    BAND_ACTIVITY,
    BAND_CONDITIONS,
    CONTESTS,
    METEOR_SHOWERS,
    SOLAR_INDICES,
    DashboardService,
)
from nextskip.datasource.spots.stream import SpotStreamProcessor
from nextskip.models import (
    Activation,
    ActivationsSummary,
    ActivationType,
    Contest,
    Park,
    SolarIndices,
)
from nextskip.scheduler.coordinator import RefreshScheduler, RefreshTaskCoordinator
from nextskip.services.cache import CacheRegistry
from tests.conftest import NOW, FakeRefreshService, FakeSource, make_client


class RunningSpotStream(SpotStreamProcessor):
    """Spot processor that reports a live connection without a consumer task."""

    connected = True


def summary() -> ActivationsSummary:
    return ActivationsSummary(
        pota_activations=[
            Activation(
                spot_id="42",
                activator_callsign="W1AW",
                type=ActivationType.POTA,
                frequency=14074.0,
                mode="FT8",
                spotted_at=NOW - timedelta(minutes=2),
                source="POTA API",
                location=Park(reference="US-0001", name="Acadia"),
            )
        ],
        last_updated=NOW,
    )


def contest() -> Contest:
    return Contest(
        name="CQ WW DX", start_time=NOW - timedelta(hours=1), end_time=NOW + timedelta(hours=47)
    )


def value_loader(value):
    async def load():
        return value

    return load


async def broken_loader():
    raise RuntimeError("database is locked")


def build_caches(clock) -> CacheRegistry:
    caches = CacheRegistry(clock=clock)
    ttl = timedelta(minutes=10)
    caches.register(ACTIVATIONS, value_loader(summary()), ttl)
    caches.register(
        SOLAR_INDICES,
        value_loader(
            SolarIndices(
                solar_flux_index=150.0, k_index=3, a_index=10, timestamp=NOW, source="HamQSL"
            )
        ),
        ttl,
    )
    caches.register(BAND_CONDITIONS, value_loader([]), ttl)
    caches.register(CONTESTS, value_loader([contest()]), ttl)
    caches.register(METEOR_SHOWERS, broken_loader, ttl)
    caches.register(BAND_ACTIVITY, value_loader({}), ttl)
    return caches


@pytest.fixture
def refresh_scheduler(clock) -> RefreshScheduler:
    scheduler = RefreshScheduler(clock=clock)
    for task_name, display_name in [("pota", "POTA Activations"), ("contests", "Contest Calendar")]:
        scheduler.register(
            RefreshTaskCoordinator(
                task_name, display_name, FakeRefreshService(), timedelta(minutes=1), clock=clock
            )
        )
    return scheduler


@pytest.fixture
def spot_stream(clock) -> RunningSpotStream:
    return RunningSpotStream(buffer_size=1, clock=clock)


@pytest.fixture
def client(clock, refresh_scheduler, spot_stream):
    pota = make_client(FakeSource("POTA API", results=[[]]), clock)
    dashboard = DashboardService(build_caches(clock), {ACTIVATIONS: [pota]}, clock)
    feeds = FeedStatusService(refresh_scheduler, [SpotStreamStatus(spot_stream)], clock=clock)
    with TestClient(create_dashboard_app(dashboard, feeds, spot_stream)) as test_client:
        yield test_client


class TestDataEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.json() == {"status": "ok", "service": "nextskip-dashboard"}

    def test_activations(self, client):
        body = client.get("/api/activations").json()

        assert body["timestamp"] == NOW.isoformat()
        assert body["data"]["total_count"] == 1
        assert body["data"]["pota"][0]["spot_id"] == "42"
        assert body["data"]["pota"][0]["score"] == 100
        assert body["data"]["pota"][0]["favorable"] is True
        assert body["freshness"] == [
            {
                "source": "POTA API",
                "last_successful_refresh": None,
                "is_stale": True,
                "serving_stale": False,
            }
        ]

    def test_propagation(self, client):
        data = client.get("/api/propagation").json()["data"]

        assert data["solar_indices"]["score"] == 68
        assert data["band_conditions"] == []

    def test_contests_carry_status(self, client):
        data = client.get("/api/contests").json()["data"]

        assert data[0]["name"] == "CQ WW DX"
        assert data[0]["status"] == "ACTIVE"

    def test_failed_cache_serves_empty_default(self, client):
        response = client.get("/api/meteors")

        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_opportunities_ranked(self, client):
        data = client.get("/api/opportunities").json()["data"]

        scores = [item["score"] for item in data]
        assert scores == sorted(scores, reverse=True)
        assert {item["type"] for item in data} == {"activations", "solar", "contest"}

    def test_opportunities_limit(self, client):
        assert len(client.get("/api/opportunities", params={"limit": 1}).json()["data"]) == 1
        assert client.get("/api/opportunities", params={"limit": 0}).status_code == 422


class TestFeedEndpoints:
    def test_list_feeds(self, client):
        feeds = client.get("/api/feeds").json()

        assert [f["id"] for f in feeds] == ["contests", "pota", "pskreporter-spots"]
        assert feeds[1]["status_message"] == "Never executed"

    def test_unknown_feed(self, client):
        assert client.get("/api/feeds/missing").status_code == 404
        assert client.post("/api/feeds/missing/refresh").status_code == 404

    def test_refresh_scheduled_feed(self, client, refresh_scheduler):
        response = client.post("/api/feeds/pota/refresh")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "feed_id": "pota",
            "message": "Refresh scheduled",
        }
        assert refresh_scheduler.next_run_time("pota") == NOW

    def test_subscription_feed_is_not_refreshable(self, client):
        response = client.post("/api/feeds/pskreporter-spots/refresh")

        assert response.status_code == 409
        assert "does not support manual refresh" in response.json()["detail"]

    def test_failed_reschedule_is_conflict(self, client, refresh_scheduler):
        refresh_scheduler.scheduler.remove_job("contests")

        response = client.post("/api/feeds/contests/refresh")

        assert response.status_code == 409
        assert "Failed to trigger refresh" in response.json()["detail"]


class TestSpotIngest:
    def test_accepts_and_reports_drops(self, client, spot_stream):
        messages = [{"b": "20m", "md": "FT8", "t": 1}, {"b": "40m", "md": "CW", "t": 2}]

        response = client.post("/api/spots/ingest", json=messages)

        assert response.json() == {"accepted": 1, "dropped": 1}
        assert spot_stream.dropped_messages == 1
        assert spot_stream.last_message_at == NOW

    def test_rejected_when_stream_not_running(self, clock):
        dashboard = DashboardService(build_caches(clock), clock=clock)
        stream = SpotStreamProcessor(clock=clock)
        app = create_dashboard_app(dashboard, FeedStatusService(None), stream)

        with TestClient(app) as test_client:
            response = test_client.post("/api/spots/ingest", json=[{"b": "20m"}])

        assert response.status_code == 409
