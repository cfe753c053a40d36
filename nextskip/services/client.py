"""
ServiceClient - Shared async HTTP transport for external sources.

Provides:
- One lazily created httpx.AsyncClient
- Per-request timeout and a streamed response-size cap
- Mapping of httpx failures onto the typed fetch errors
"""

import json
from typing import Any

import httpx
from loguru import logger

from nextskip.services.errors import (
    ExternalApiError,
    HttpStatusError,
    InvalidResponseError,
    RequestTimeoutError,
    ResponseTooLargeError,
)
from nextskip.settings import global_settings


class ServiceClient:
    """
    HTTP client used by every data source.

    Usage:
        client = ServiceClient()

        data = await client.get_json("POTA API", "https://api.pota.app/spot/activator")
        xml = await client.get_text("HamQSL", "https://www.hamqsl.com/solarxml.php")
    """

    def __init__(
        self,
        default_timeout: float | None = None,
        max_response_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._default_timeout = default_timeout or global_settings.http_request_timeout
        self._max_response_bytes = (
            max_response_bytes or global_settings.http_max_response_bytes
        )
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._default_timeout),
                follow_redirects=True,
                transport=self._transport,
                headers={"User-Agent": "NextSkip/1.0"},
            )
        return self._http_client

    async def get_json(
        self,
        source_name: str,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> Any:
        """
        GET a URL and decode the body as JSON.

        Raises:
            ExternalApiError: Connection failure or timeout
            HttpStatusError: Non-2xx response
            InvalidResponseError: Body is not JSON or is too large
        """
        body = await self._execute_request(source_name, url, params, timeout, max_bytes)
        try:
            return json.loads(body)
        except ValueError as e:
            raise InvalidResponseError(
                f"Invalid JSON from '{source_name}': {e}", source_name=source_name
            ) from e

    async def get_text(
        self,
        source_name: str,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> str:
        """GET a URL and return the body as text."""
        body = await self._execute_request(source_name, url, params, timeout, max_bytes)
        return body.decode("utf-8", errors="replace")

    async def _execute_request(
        self,
        source_name: str,
        url: str,
        params: dict[str, Any] | None,
        timeout: float | None,
        max_bytes: int | None,
    ) -> bytes:
        """Execute the actual HTTP request, reading at most `max_bytes`."""
        client = await self._get_http_client()
        req_timeout = timeout or self._default_timeout
        limit = max_bytes or self._max_response_bytes

        try:
            async with client.stream(
                "GET", url, params=params, timeout=req_timeout
            ) as response:
                if response.is_error:
                    raise HttpStatusError(source_name, response.status_code)

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > limit:
                    raise ResponseTooLargeError(source_name, limit)

                chunks: list[bytes] = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > limit:
                        raise ResponseTooLargeError(source_name, limit)
                    chunks.append(chunk)
                return b"".join(chunks)

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(source_name, req_timeout) from e

        except httpx.RequestError as e:
            raise ExternalApiError(
                f"Request to '{source_name}' failed: {e}", source_name=source_name
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ServiceClient closed")


# Global client instance
_global_client: ServiceClient | None = None


def get_service_client() -> ServiceClient:
    """Get the global service client instance."""
    global _global_client
    if _global_client is None:
        _global_client = ServiceClient()
    return _global_client


async def close_service_client() -> None:
    """Close the global service client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
