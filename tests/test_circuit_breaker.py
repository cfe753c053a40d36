"""Tests for the circuit breaker."""

from datetime import timedelta

from nextskip.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from nextskip.services.errors import ExternalApiError
from tests.conftest import FakeSource, make_client


def breaker(clock, **kwargs) -> CircuitBreaker:
    return CircuitBreaker("Test API", CircuitBreakerConfig(**kwargs), clock=clock)


class TestCircuitBreakerStates:
    """State transitions driven by recorded outcomes."""

    def test_stays_closed_below_minimum_calls(self, clock):
        cb = breaker(clock)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_rate == -1.0

    def test_opens_at_failure_threshold(self, clock):
        cb = breaker(clock)
        for _ in range(3):
            cb.record_success()
        for _ in range(2):
            cb.record_failure()
        assert cb.state == CircuitState.CLOSED

        cb.record_failure()
        # 3 failures out of 6 calls = 50%
        assert cb.state == CircuitState.OPEN
        assert not cb.can_request()

    def test_half_open_after_open_duration(self, clock):
        cb = breaker(clock, open_duration=timedelta(seconds=30))
        for _ in range(5):
            cb.record_failure()
        assert cb.get_time_until_reset() == 30

        clock.advance(seconds=30)
        assert cb.state == CircuitState.HALF_OPEN

    def test_half_open_limits_probe_calls(self, clock):
        cb = breaker(clock, half_open_max_calls=2, open_duration=timedelta(seconds=1))
        for _ in range(5):
            cb.record_failure()
        clock.advance(seconds=1)

        assert cb.can_request()
        assert cb.can_request()
        assert not cb.can_request()

    def test_successful_probes_close(self, clock):
        cb = breaker(clock, open_duration=timedelta(seconds=1))
        for _ in range(5):
            cb.record_failure()
        clock.advance(seconds=1)

        for _ in range(3):
            assert cb.can_request()
            cb.record_success()
        assert cb.state == CircuitState.CLOSED

    def test_failing_probes_reopen(self, clock):
        cb = breaker(clock, open_duration=timedelta(seconds=1))
        for _ in range(5):
            cb.record_failure()
        clock.advance(seconds=1)

        for _ in range(3):
            cb.can_request()
            cb.record_failure()
        assert cb.state == CircuitState.OPEN

    def test_manual_reset(self, clock):
        cb = breaker(clock)
        for _ in range(5):
            cb.record_failure()
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.can_request()


class TestCircuitBreakerRegistry:
    def test_one_breaker_per_source(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)
        assert registry.get("POTA API") is registry.get("POTA API")
        assert registry.get("POTA API") is not registry.get("SOTA API")

    def test_lists_open_circuits(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)
        failing = registry.get("POTA API")
        registry.get("SOTA API")
        for _ in range(5):
            failing.record_failure()

        assert registry.get_open_circuits() == ["POTA API"]
        registry.reset_all()
        assert registry.get_open_circuits() == []


class TestFailFast:
    """An open circuit rejects fetches without calling the source."""

    async def test_open_circuit_skips_source(self, clock):
        source = FakeSource(results=[ExternalApiError("down")], default=[])
        client = make_client(source, clock)

        for _ in range(5):
            await client.fetch()
        assert client.circuit_open
        assert source.calls == 5

        result = await client.fetch()

        assert result == []
        assert source.calls == 5
        assert client.serving_stale
        assert "Circuit breaker open" in client.last_error

    async def test_recovers_after_open_duration(self, clock):
        source = FakeSource(results=[ExternalApiError("down")] * 5 + [["ok"]])
        client = make_client(
            source, clock, CircuitBreakerConfig(open_duration=timedelta(seconds=10))
        )
        for _ in range(5):
            await client.fetch()

        clock.advance(seconds=10)
        result = await client.fetch()

        assert result == ["ok"]
        assert source.calls == 6
        assert not client.serving_stale
