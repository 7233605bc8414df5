"""Unit tests for the shared HTTP source and its circuit breaker."""

import httpx
import pytest

from src.core.circuit_breaker import CircuitState, get_all_circuit_breakers
from src.core.exceptions import (
    CollectorAuthError,
    CollectorError,
    CollectorNotFoundError,
    CollectorUnavailableError,
)
from src.core.http_source import HttpSource


class FlakySource(HttpSource):
    source_name = "flaky_feed"


class StatusSource(HttpSource):
    source_name = "status_feed"


def source_with(cls, handler, **kwargs) -> HttpSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return cls("https://feed.example.com", client=client, **kwargs)


class TestCircuitBreaker:
    """Test breaker state driven by HttpSource requests."""

    @pytest.mark.asyncio
    async def test_repeated_failures_open_the_circuit(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(500, json={})

        source = source_with(FlakySource, handler, failure_threshold=2, recovery_timeout=60)

        for _ in range(2):
            with pytest.raises(CollectorError):
                await source._request("GET", "/prices")

        with pytest.raises(CollectorUnavailableError):
            await source._request("GET", "/prices")

        assert len(calls) == 2
        assert get_all_circuit_breakers()["flaky_feed"].state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_not_found_does_not_count_against_the_breaker(self):
        source = source_with(StatusSource, lambda r: httpx.Response(404, json={}), failure_threshold=1)

        with pytest.raises(CollectorNotFoundError):
            await source._request("GET", "/missing")

        assert get_all_circuit_breakers()["status_feed"].state == CircuitState.CLOSED


class TestStatusMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors(self, status):
        source = source_with(StatusSource, lambda r: httpx.Response(status, json={}))

        with pytest.raises(CollectorAuthError):
            await source._request("GET", "/secure")

    @pytest.mark.asyncio
    async def test_text_and_bytes_responses(self):
        source = source_with(StatusSource, lambda r: httpx.Response(200, text="ok"))

        assert await source._request("GET", "/a", response_type="text") == "ok"
        assert await source._request("GET", "/a", response_type="bytes") == b"ok"
