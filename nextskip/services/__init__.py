"""
Service layer infrastructure - resilience patterns for external API calls.

Provides:
- CacheAsideStore / CacheRegistry: read-through caches, refreshed by writers
- CircuitBreaker: Prevents cascading failures
- RetryConfig: bounded retry with exponential backoff
- ServiceClient: shared HTTP client with timeout and response-size cap
- CacheRefreshWorker: runs cache rebuilds off the refresh path
"""

from nextskip.services.errors import (
    ServiceError,
    ExternalApiError,
    RequestTimeoutError,
    HttpStatusError,
    InvalidResponseError,
    ResponseTooLargeError,
    CircuitOpenError,
    CacheError,
    DataRefreshError,
)
from nextskip.services.cache import (
    CacheAsideStore,
    CacheEntry,
    CacheRegistry,
    LastGoodValueCache,
)
from nextskip.services.cache_refresh import CacheRefreshEvent, CacheRefreshWorker
from nextskip.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from nextskip.services.retry import RetryConfig, call_with_retry
from nextskip.services.client import ServiceClient

__all__ = [
    # Errors
    "ServiceError",
    "ExternalApiError",
    "RequestTimeoutError",
    "HttpStatusError",
    "InvalidResponseError",
    "ResponseTooLargeError",
    "CircuitOpenError",
    "CacheError",
    "DataRefreshError",
    # Cache
    "CacheAsideStore",
    "CacheEntry",
    "CacheRegistry",
    "LastGoodValueCache",
    "CacheRefreshEvent",
    "CacheRefreshWorker",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Retry
    "RetryConfig",
    "call_with_retry",
    # Client
    "ServiceClient",
]
