"""Tests for the shared HTTP client and its error mapping."""

import httpx
import pytest

from nextskip.services.client import ServiceClient
from nextskip.services.errors import (
    ExternalApiError,
    HttpStatusError,
    InvalidResponseError,
    RequestTimeoutError,
    ResponseTooLargeError,
)


def client_for(handler, **kwargs) -> ServiceClient:
    return ServiceClient(
        default_timeout=5.0, transport=httpx.MockTransport(handler), **kwargs
    )


class TestServiceClient:
    async def test_get_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[{"activator": "W1AW"}])

        async with client_for(handler) as client:
            data = await client.get_json("POTA API", "https://api.example/spots", params={"a": "1"})

        assert data == [{"activator": "W1AW"}]
        assert seen["params"] == {"a": "1"}

    async def test_get_text(self):
        async with client_for(lambda r: httpx.Response(200, text="<solar/>")) as client:
            assert await client.get_text("HamQSL", "https://hamqsl.example") == "<solar/>"

    async def test_status_error(self):
        async with client_for(lambda r: httpx.Response(503)) as client:
            with pytest.raises(HttpStatusError) as exc_info:
                await client.get_json("POTA API", "https://api.example/spots")

        assert exc_info.value.status_code == 503
        assert exc_info.value.source_name == "POTA API"

    async def test_invalid_json(self):
        async with client_for(lambda r: httpx.Response(200, text="not json")) as client:
            with pytest.raises(InvalidResponseError):
                await client.get_json("POTA API", "https://api.example/spots")

    async def test_response_too_large(self):
        async with client_for(lambda r: httpx.Response(200, content=b"x" * 100)) as client:
            with pytest.raises(ResponseTooLargeError):
                await client.get_text("HamQSL", "https://hamqsl.example", max_bytes=10)

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(ExternalApiError, match="connection refused"):
                await client.get_json("SOTA API", "https://sota.example")

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with client_for(handler) as client:
            with pytest.raises(RequestTimeoutError) as exc_info:
                await client.get_json("SOTA API", "https://sota.example")

        # Timeouts are retried like other transport failures
        assert isinstance(exc_info.value, ExternalApiError)
