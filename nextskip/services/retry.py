"""
Retry policy for outbound fetches.

Only transient network conditions are retried. HTTP status and response-shape
failures are returned to the caller on the first attempt.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from nextskip.services.errors import ExternalApiError

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for fetch retries."""

    max_attempts: int = 3
    wait_seconds: float = 0.5  # First backoff, doubled per attempt
    max_wait_seconds: float = 5.0


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"Fetch attempt {retry_state.attempt_number} failed, retrying: {exc}"
    )


def build_retrying(config: RetryConfig) -> AsyncRetrying:
    """Create a tenacity retrier for the given policy."""
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, config.max_attempts)),
        wait=wait_exponential(
            multiplier=config.wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(ExternalApiError),
        before_sleep=_log_retry,
        reraise=True,
    )


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
) -> T:
    """Run `func`, retrying transient failures per `config`."""
    async for attempt in build_retrying(config):
        with attempt:
            return await func()
    raise AssertionError("retry loop exited without a result")
