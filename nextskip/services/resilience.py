"""
ResilientFetchClient - wraps one data source with retry, circuit breaking and fallback.

Call order for every fetch:
    retry( circuit_breaker( source.fetch() ) )

On failure the client serves the last good value from its fallback slot, or
the source's default when the slot is empty, and flags itself as serving
stale data. It never raises to the caller.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

from nextskip.datasource.base import BaseDataSource
from nextskip.services.cache import LastGoodValueCache
from nextskip.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from nextskip.services.errors import CircuitOpenError
from nextskip.services.retry import RetryConfig, call_with_retry
from nextskip.settings import Settings, global_settings

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResilientFetchClient(Generic[T]):
    """
    Fetch client for a single source.

    Usage:
        client = ResilientFetchClient(PotaSource(), breaker, RetryConfig())
        activations = await client.fetch()
        if client.serving_stale:
            ...
    """

    def __init__(
        self,
        source: BaseDataSource[T],
        breaker: CircuitBreaker,
        retry_config: RetryConfig | None = None,
        fallback_cache: LastGoodValueCache | None = None,
        refresh_interval: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.breaker = breaker
        self.retry_config = retry_config or RetryConfig()
        self._fallback_cache = fallback_cache or LastGoodValueCache(clock=clock)
        self._refresh_interval = refresh_interval or source.refresh_interval
        self._clock = clock

        self._last_successful_refresh: datetime | None = None
        self._serving_stale = False
        self._last_error: str | None = None

    @property
    def source_name(self) -> str:
        return self.source.source_name

    @property
    def refresh_interval(self) -> timedelta:
        return self._refresh_interval

    @property
    def last_successful_refresh(self) -> datetime | None:
        return self._last_successful_refresh

    @property
    def serving_stale(self) -> bool:
        return self._serving_stale

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def fetch(self) -> T | None:
        """
        Fetch the latest batch from the source.

        Returns:
            The live result, the last good value, or the source default
        """
        try:
            data = await call_with_retry(self._guarded_call, self.retry_config)
        except Exception as e:
            self._last_error = str(e)
            logger.error(f"Fetch from {self.source_name} failed: {e}")
            return self._fallback()

        self._fallback_cache.put(self.source.cache_name, self.source.cache_key, data)
        self._last_successful_refresh = self._clock()
        self._serving_stale = False
        self._last_error = None
        return data

    async def _guarded_call(self) -> T:
        if not self.breaker.can_request():
            raise CircuitOpenError(
                self.source_name, self.breaker.get_time_until_reset() or 0
            )
        try:
            data = await self.source.fetch()
        except Exception:
            self.breaker.record_failure()
            raise
        self.breaker.record_success()
        return data

    def _fallback(self) -> T | None:
        self._serving_stale = True
        entry = self._fallback_cache.get(self.source.cache_name, self.source.cache_key)
        if entry is not None:
            logger.warning(
                f"Serving cached data for {self.source_name} "
                f"from {entry.timestamp.isoformat()}"
            )
            return entry.data

        default = self.source.default_value()
        logger.warning(f"No cached data for {self.source_name}, serving default")
        return default

    def is_stale(self) -> bool:
        """True when the last success is older than the refresh interval, or never happened."""
        if self._last_successful_refresh is None:
            return True
        return self._clock() - self._last_successful_refresh > self._refresh_interval

    def get_data_age(self) -> timedelta | None:
        """Age of the last successful fetch, None when there has been none."""
        if self._last_successful_refresh is None:
            return None
        return self._clock() - self._last_successful_refresh

    def get_health_status(self) -> dict[str, Any]:
        age = self.get_data_age()
        return {
            "source_name": self.source_name,
            "last_successful_refresh": (
                self._last_successful_refresh.isoformat()
                if self._last_successful_refresh
                else None
            ),
            "data_age_seconds": age.total_seconds() if age is not None else None,
            "is_stale": self.is_stale(),
            "serving_stale": self._serving_stale,
            "circuit_state": self.breaker.state.value,
            "last_error": self._last_error,
        }

    @property
    def circuit_open(self) -> bool:
        return self.breaker.state == CircuitState.OPEN


def build_fetch_client(
    source: BaseDataSource[T],
    breakers: CircuitBreakerRegistry,
    fallback_cache: LastGoodValueCache,
    settings: Settings | None = None,
) -> ResilientFetchClient[T]:
    """Create a fetch client for `source` using global and per-source settings."""
    settings = settings or global_settings
    overrides = settings.for_source(source.source_name)

    retry_config = RetryConfig(
        max_attempts=overrides.retry_max_attempts or settings.fetch_retry_max_attempts,
        wait_seconds=(
            overrides.retry_wait_seconds
            if overrides.retry_wait_seconds is not None
            else settings.fetch_retry_wait_seconds
        ),
        max_wait_seconds=settings.fetch_retry_max_wait_seconds,
    )
    breaker_config = CircuitBreakerConfig(
        sliding_window_size=settings.breaker_sliding_window_size,
        minimum_calls=settings.breaker_minimum_calls,
        failure_rate_threshold=(
            overrides.failure_rate_threshold
            or settings.breaker_failure_rate_threshold
        ),
        open_duration=timedelta(seconds=settings.breaker_open_seconds),
        half_open_max_calls=settings.breaker_half_open_calls,
    )
    return ResilientFetchClient(
        source,
        breakers.get(source.source_name, breaker_config),
        retry_config=retry_config,
        fallback_cache=fallback_cache,
        refresh_interval=settings.refresh_interval(
            source.source_name, source.refresh_interval
        ),
    )
