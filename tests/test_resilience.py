"""Tests for the resilient fetch client."""

from datetime import timedelta

from nextskip.services.errors import ExternalApiError, HttpStatusError
from nextskip.services.resilience import build_fetch_client
from nextskip.services.cache import LastGoodValueCache
from nextskip.services.circuit_breaker import CircuitBreakerRegistry
from nextskip.settings import Settings
from tests.conftest import FakeSource, make_client


class TestFetchSuccess:
    async def test_returns_live_data(self, clock):
        client = make_client(FakeSource(results=[[1, 2]]), clock)

        assert await client.fetch() == [1, 2]
        assert client.last_successful_refresh == clock.now
        assert not client.serving_stale
        assert client.last_error is None

    async def test_staleness_follows_refresh_interval(self, clock):
        client = make_client(FakeSource(results=[[1]], interval=timedelta(minutes=5)), clock)
        assert client.is_stale()
        assert client.get_data_age() is None

        await client.fetch()
        clock.advance(minutes=5)
        assert not client.is_stale()
        assert client.get_data_age() == timedelta(minutes=5)

        clock.advance(seconds=1)
        assert client.is_stale()


class TestFallback:
    """Failed fetches never raise."""

    async def test_warm_fallback_serves_last_good_value(self, clock):
        source = FakeSource(results=[["fresh"], ExternalApiError("down")])
        client = make_client(source, clock)
        await client.fetch()
        refreshed_at = client.last_successful_refresh

        clock.advance(minutes=1)
        result = await client.fetch()

        assert result == ["fresh"]
        assert client.serving_stale
        assert client.last_error == "down"
        assert client.last_successful_refresh == refreshed_at

    async def test_cold_fallback_serves_default(self, clock):
        source = FakeSource(results=[HttpStatusError("Fake API", 503)], default=[])
        client = make_client(source, clock)

        assert await client.fetch() == []
        assert client.serving_stale
        assert client.last_successful_refresh is None

    async def test_unexpected_exception_is_contained(self, clock):
        source = FakeSource(results=[RuntimeError("boom")], default="default")
        client = make_client(source, clock)

        assert await client.fetch() == "default"
        assert client.serving_stale

    async def test_recovery_clears_stale_flag(self, clock):
        source = FakeSource(results=[ExternalApiError("down"), ["back"]], default=[])
        client = make_client(source, clock)
        await client.fetch()

        assert await client.fetch() == ["back"]
        assert not client.serving_stale
        assert client.last_error is None

    async def test_health_status(self, clock):
        client = make_client(FakeSource(results=[ExternalApiError("down")]), clock)
        await client.fetch()

        status = client.get_health_status()
        assert status["source_name"] == "Fake API"
        assert status["serving_stale"] is True
        assert status["is_stale"] is True
        assert status["circuit_state"] == "CLOSED"
        assert status["last_error"] == "down"


class TestRetry:
    async def test_transient_errors_are_retried(self, clock):
        source = FakeSource(results=[ExternalApiError("flaky"), ExternalApiError("flaky"), ["ok"]])
        client = make_client(source, clock, max_attempts=3)

        assert await client.fetch() == ["ok"]
        assert source.calls == 3

    async def test_gives_up_after_max_attempts(self, clock):
        source = FakeSource(results=[ExternalApiError("down")], default=[])
        client = make_client(source, clock, max_attempts=3)

        assert await client.fetch() == []
        assert source.calls == 3

    async def test_status_errors_are_not_retried(self, clock):
        source = FakeSource(results=[HttpStatusError("Fake API", 404)], default=[])
        client = make_client(source, clock, max_attempts=3)

        await client.fetch()
        assert source.calls == 1


class TestBuildFetchClient:
    def test_uses_configured_refresh_interval(self):
        settings = Settings()
        source = FakeSource(interval=timedelta(minutes=7))
        client = build_fetch_client(
            source, CircuitBreakerRegistry(), LastGoodValueCache(), settings
        )

        assert client.refresh_interval == timedelta(minutes=7)
        assert client.retry_config.max_attempts == settings.fetch_retry_max_attempts
        assert client.breaker.source_name == "Fake API"
