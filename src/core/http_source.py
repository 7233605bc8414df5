"""Shared async HTTP plumbing for external sources.

Every external HTTP dependency (price APIs, the YouTube Data API, RapidAPI
endpoints, the caption scraper) extends ``HttpSource``, which provides:

- a lazily created ``httpx.AsyncClient`` (or an injected one, e.g. with
  ``httpx.MockTransport`` in tests)
- a named circuit breaker per source
- HTTP status mapping onto the collector exception hierarchy
- tenacity retries for rate limits, logged before each sleep

Example:
    class BinanceSource(HttpSource):
        source_name = "binance"

    async with BinanceSource(base_url=BINANCE_API_BASE) as source:
        ticker = await source._request("GET", "/ticker/24hr", params={"symbol": "BTCUSDT"})
"""

from typing import Any, Literal, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.circuit_breaker import get_circuit_breaker
from src.core.exceptions import (
    CollectorAuthError,
    CollectorError,
    CollectorNotFoundError,
    CollectorRateLimitError,
    CollectorTimeoutError,
    CollectorUnavailableError,
)
from src.monitoring.metrics import track_source_operation

logger = structlog.get_logger(__name__)

ResponseType = Literal["json", "text", "bytes"]


class HttpSource:
    """Base class for external HTTP sources."""

    source_name = "http"

    def __init__(
        self,
        base_url: str = "",
        *,
        headers: Optional[dict[str, str]] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ):
        """Initialize the source.

        Args:
            base_url: Prefix for relative request paths.
            headers: Default headers sent with every request.
            timeout: Request timeout in seconds.
            client: Pre-built client; the source will not close it.
            failure_threshold: Failures before the circuit opens.
            recovery_timeout: Seconds before an open circuit is tried again.
        """
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._breaker = get_circuit_breaker(
            self.source_name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._client

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._base_url}/{endpoint.lstrip('/')}"

    @retry(
        retry=retry_if_exception_type(CollectorRateLimitError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=lambda rs: logger.warning(
            "http_source_rate_limited_retrying",
            attempt=rs.attempt_number,
        ),
        reraise=True,
    )
    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        response_type: ResponseType = "json",
        operation: str = "request",
    ) -> Any:
        """Make a request through the circuit breaker.

        Args:
            method: HTTP method.
            endpoint: Path relative to ``base_url``, or an absolute URL.
            params: Query parameters.
            headers: Extra headers for this request.
            response_type: How to decode the body.
            operation: Label for source metrics.

        Returns:
            Decoded JSON, text or raw bytes.

        Raises:
            CollectorUnavailableError: When circuit breaker is open.
            CollectorRateLimitError: When rate limited.
            CollectorAuthError: On authentication failure.
            CollectorNotFoundError: When resource not found.
            CollectorTimeoutError: When the request times out.
            CollectorError: On other API errors.
        """
        name = self.source_name
        if not self._breaker.can_execute():
            recovery_time = self._breaker.time_until_recovery()
            logger.warning(f"{name}_circuit_open", recovery_time=recovery_time, endpoint=endpoint)
            raise CollectorUnavailableError(
                name,
                f"Circuit breaker open. Recovery in {recovery_time:.1f}s",
                {"endpoint": endpoint, "recovery_time": recovery_time},
            )

        client = await self._ensure_client()
        request_headers = {**self._headers, **(headers or {})}

        with track_source_operation(name, operation):
            try:
                response = await client.request(
                    method,
                    self._url(endpoint),
                    params=params,
                    headers=request_headers,
                )
            except httpx.TimeoutException as e:
                await self._breaker.record_failure()
                logger.error(f"{name}_timeout", endpoint=endpoint, error=str(e))
                raise CollectorTimeoutError(name, f"Request timeout: {e}", {"endpoint": endpoint}) from e
            except httpx.RequestError as e:
                await self._breaker.record_failure()
                logger.error(f"{name}_request_error", endpoint=endpoint, error=str(e))
                raise CollectorError(
                    name,
                    f"Request failed: {e}",
                    {"endpoint": endpoint, "original_error": str(e)},
                ) from e

            await self._raise_for_status(response, endpoint)
            await self._breaker.record_success()

            if response_type == "bytes":
                return response.content
            if response_type == "text":
                return response.text
            return response.json() if response.content else {}

    async def _raise_for_status(self, response: httpx.Response, endpoint: str) -> None:
        """Map error status codes onto collector exceptions."""
        name = self.source_name
        status = response.status_code
        if status < 400:
            return

        if status == 429:
            await self._breaker.record_failure()
            logger.warning(f"{name}_rate_limited", endpoint=endpoint)
            raise CollectorRateLimitError(
                name,
                "Rate limited",
                {"endpoint": endpoint, "retry_after": response.headers.get("retry-after")},
            )
        if status in (401, 403):
            await self._breaker.record_failure()
            raise CollectorAuthError(
                name,
                "Invalid API key" if status == 401 else "API key not authorized",
                {"endpoint": endpoint, "status_code": status},
            )
        if status == 404:
            # Missing resources are expected and do not count against the breaker
            raise CollectorNotFoundError(name, f"Resource not found: {endpoint}", {"endpoint": endpoint})

        await self._breaker.record_failure()
        logger.error(f"{name}_api_error", status_code=status, endpoint=endpoint)
        raise CollectorError(
            name,
            f"API error {status}",
            {"endpoint": endpoint, "status_code": status},
        )
