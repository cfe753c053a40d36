"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Generic, TypeVar

from nextskip.services.client import ServiceClient

T = TypeVar("T")


class BaseDataSource(ABC, Generic[T]):
    """
    Abstract base class for all external data sources.

    A source only knows how to make the live call and parse the result.
    Retry, circuit breaking and fallback are applied around it by
    ResilientFetchClient.

    All data sources should:
    - Use ServiceClient for HTTP requests
    - Return domain models
    - Raise the typed errors from nextskip.services.errors on failure
    """

    CACHE_KEY = "current"

    def __init__(self, client: ServiceClient | None = None):
        from nextskip.services.client import get_service_client

        self.client = client or get_service_client()

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Human readable name used for attribution and circuit breaking."""
        ...

    @property
    @abstractmethod
    def refresh_interval(self) -> timedelta:
        """How often the source is expected to be polled."""
        ...

    @property
    def cache_name(self) -> str:
        """Fallback cache slot name for the last good value."""
        return self.source_name

    @property
    def cache_key(self) -> str:
        return self.CACHE_KEY

    @abstractmethod
    async def fetch(self) -> T:
        """Make the live call and return the parsed batch."""
        ...

    def default_value(self) -> T | None:
        """Value served when the live call fails and nothing is cached."""
        return None
