"""
CircuitBreaker - Stops calling a failing source until it has had time to recover.

The breaker tracks the outcome of the last `sliding_window_size` calls.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Source is failing, calls are rejected without a network attempt
- HALF_OPEN: A limited number of probe calls are let through

Transitions:
- CLOSED → OPEN: At least `minimum_calls` recorded and the failure rate
  reaches `failure_rate_threshold`
- OPEN → HALF_OPEN: After `open_duration` expires
- HALF_OPEN → CLOSED: The probe calls finish under the threshold
- HALF_OPEN → OPEN: The probe calls reach the threshold
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from loguru import logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Rejecting calls
    HALF_OPEN = "HALF_OPEN"  # Probing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    sliding_window_size: int = 10
    minimum_calls: int = 5
    failure_rate_threshold: float = 50.0  # Percent
    open_duration: timedelta = timedelta(minutes=1)
    half_open_max_calls: int = 3


class CircuitBreaker:
    """
    Circuit breaker implementation for a single source.

    Usage:
        cb = CircuitBreaker("POTA API")

        if not cb.can_request():
            raise CircuitOpenError(...)

        try:
            result = await make_request()
            cb.record_success()
            return result
        except Exception:
            cb.record_failure()
            raise
    """

    def __init__(
        self,
        source_name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source_name = source_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._outcomes: deque[bool] = deque(maxlen=self.config.sliding_window_size)
        self._half_open_calls = 0
        self._half_open_outcomes: list[bool] = []
        self._last_failure_time: datetime | None = None
        self._opened_at: datetime | None = None

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for automatic transitions."""
        if self._state == CircuitState.OPEN:
            if (
                self._opened_at
                and self._clock() >= self._opened_at + self.config.open_duration
            ):
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                self._half_open_outcomes = []
                logger.info(
                    f"Circuit breaker '{self.source_name}' transitioned to HALF_OPEN"
                )
        return self._state

    @property
    def failure_rate(self) -> float:
        """Failure rate in percent over the sliding window, -1 below minimum calls."""
        if len(self._outcomes) < self.config.minimum_calls:
            return -1.0
        failures = sum(1 for ok in self._outcomes if not ok)
        return failures / len(self._outcomes) * 100

    def can_request(self) -> bool:
        """Check whether a call may go out, reserving a probe slot when half-open."""
        current_state = self.state

        if current_state == CircuitState.CLOSED:
            return True

        if current_state == CircuitState.OPEN:
            return False

        if self._half_open_calls < self.config.half_open_max_calls:
            self._half_open_calls += 1
            return True
        return False

    def record_success(self) -> None:
        """Record a successful call."""
        self._record(True)

    def record_failure(self) -> None:
        """Record a failed call."""
        self._last_failure_time = self._clock()
        self._record(False)

    def _record(self, ok: bool) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_outcomes.append(ok)
            if len(self._half_open_outcomes) >= self.config.half_open_max_calls:
                failures = sum(1 for o in self._half_open_outcomes if not o)
                rate = failures / len(self._half_open_outcomes) * 100
                if rate >= self.config.failure_rate_threshold:
                    self._open(rate)
                else:
                    self._close()
            return

        if self._state == CircuitState.OPEN:
            return

        self._outcomes.append(ok)
        rate = self.failure_rate
        if rate >= 0 and rate >= self.config.failure_rate_threshold:
            self._open(rate)

    def _open(self, rate: float) -> None:
        """Transition to OPEN state."""
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_calls = 0
        self._half_open_outcomes = []
        logger.warning(
            f"Circuit breaker '{self.source_name}' OPENED "
            f"(failure rate {rate:.0f}%)"
        )

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._outcomes.clear()
        self._opened_at = None
        self._half_open_calls = 0
        self._half_open_outcomes = []
        logger.info(f"Circuit breaker '{self.source_name}' CLOSED (recovered)")

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._outcomes.clear()
        self._opened_at = None
        self._half_open_calls = 0
        self._half_open_outcomes = []
        self._last_failure_time = None
        logger.info(f"Circuit breaker '{self.source_name}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        if self._state != CircuitState.OPEN or not self._opened_at:
            return None

        reset_at = self._opened_at + self.config.open_duration
        remaining = (reset_at - self._clock()).total_seconds()
        return max(0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "source_name": self.source_name,
            "state": self.state.value,
            "failure_rate": self.failure_rate,
            "buffered_calls": len(self._outcomes),
            "last_failure": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "opened_at": (self._opened_at.isoformat() if self._opened_at else None),
            "time_until_reset": self.get_time_until_reset(),
        }


class CircuitBreakerRegistry:
    """
    Registry for managing one circuit breaker per source.

    Usage:
        registry = CircuitBreakerRegistry()
        cb = registry.get("POTA API")
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock

    def get(
        self,
        source_name: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker for a source."""
        if source_name not in self._breakers:
            self._breakers[source_name] = CircuitBreaker(
                source_name,
                config or self._default_config,
                clock=self._clock,
            )
        return self._breakers[source_name]

    def find(self, source_name: str) -> CircuitBreaker | None:
        return self._breakers.get(source_name)

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {name: cb.get_status() for name, cb in self._breakers.items()}

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for cb in self._breakers.values():
            cb.reset()
        logger.info(f"Reset {len(self._breakers)} circuit breakers")

    def reset(self, source_name: str) -> bool:
        """Reset a specific circuit breaker."""
        if source_name in self._breakers:
            self._breakers[source_name].reset()
            return True
        return False

    def get_open_circuits(self) -> list[str]:
        """Get list of sources with open circuits."""
        return [
            name
            for name, cb in self._breakers.items()
            if cb.state == CircuitState.OPEN
        ]
