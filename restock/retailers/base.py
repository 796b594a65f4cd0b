"""Retailer adapter contract and the shared request toolkit."""

import time
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Protocol, runtime_checkable

import httpx

from restock.fetcher.http_client import AsyncHTTPClient
from restock.fetcher.metrics import MetricsRecorder
from restock.fetcher.rate_limiter import RateLimiter
from restock.fetcher.retry_handler import RetryHandler
from restock.models.config import RetailerConfig
from restock.models.data_models import (
    AvailabilityRequest,
    AvailabilityResponse,
    RetailerHealthStatus,
    RetailerMetrics,
    RetailerType,
    utc_now,
)
from restock.models.errors import ErrorKind, RetailerError
from restock.monitoring.logger import StructuredLogger

# (minimum success rate, maximum probe response time in ms)
API_HEALTH_THRESHOLDS = (0.9, 5000.0)
SCRAPING_HEALTH_THRESHOLDS = (0.8, 10000.0)


@runtime_checkable
class RetailerAdapter(Protocol):
    """Capability set every retailer integration provides."""

    retailer_id: str
    config: RetailerConfig

    async def check_availability(self, request: AvailabilityRequest) -> AvailabilityResponse:
        """Current availability of one item. Raises RetailerError on failure."""
        ...

    async def search_products(self, query: str) -> List[AvailabilityResponse]:
        """TCG listings matching a free-text query. Raises RetailerError on failure."""
        ...

    async def get_health_status(self) -> RetailerHealthStatus:
        ...

    def get_metrics(self) -> RetailerMetrics:
        ...


class AdapterToolkit:
    """
    Request path shared by all adapters.

    Every request goes: rate-limit admission -> polite delay -> GET ->
    status mapping -> metrics, and the whole attempt is retried by the
    retry handler when the resulting RetailerError is retryable.
    """

    def __init__(
        self,
        config: RetailerConfig,
        http_client: AsyncHTTPClient,
        rate_limiter: RateLimiter,
        metrics: MetricsRecorder,
        logger: Optional[StructuredLogger] = None,
        retry_handler: Optional[RetryHandler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.http_client = http_client
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.logger = logger or StructuredLogger()
        self.retry_handler = retry_handler or RetryHandler(
            max_retries=config.retry.max_retries,
            base_delay=config.retry.retry_delay,
        )
        self._clock = clock

    @property
    def retailer_id(self) -> str:
        return self.config.id

    @property
    def is_scraping(self) -> bool:
        return self.config.type == RetailerType.SCRAPING

    def error(
        self,
        message: str,
        kind: ErrorKind,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None
    ) -> RetailerError:
        return RetailerError(message, self.retailer_id, kind, status_code, retryable)

    def map_status(self, response: httpx.Response, url: str = "") -> Optional[RetailerError]:
        """Translate a non-success HTTP status into a RetailerError."""
        status = response.status_code
        if status < 400:
            return None
        if status == 404:
            return self.error(f"Not found: {url}", ErrorKind.NOT_FOUND, status)
        if status == 429:
            return self.error("Rate limit exceeded upstream", ErrorKind.RATE_LIMIT, status)
        if status in (401, 403):
            if self.is_scraping:
                return self.error("Access forbidden - possible bot detection", ErrorKind.AUTH, status)
            return self.error("Authentication failed", ErrorKind.AUTH, status)
        return self.error(f"Upstream error {status}", ErrorKind.SERVER_ERROR, status)

    async def _attempt(self, url: str, params: Optional[Dict[str, Any]], headers: Optional[Dict[str, str]]) -> httpx.Response:
        if not self.rate_limiter.check_rate_limit():
            self.metrics.record_rate_limit_hit()
            self.logger.rate_limited(self.retailer_id)
            raise self.error("Rate limit exceeded", ErrorKind.RATE_LIMIT)

        await self.rate_limiter.wait_for_slot()

        start = self._clock()
        try:
            response = await self.http_client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            self.metrics.record_request(False, (self._clock() - start) * 1000)
            raise self.error(f"Request timed out: {e}", ErrorKind.NETWORK) from e
        except httpx.TransportError as e:
            self.metrics.record_request(False, (self._clock() - start) * 1000)
            raise self.error(f"Network error: {e}", ErrorKind.NETWORK) from e

        elapsed_ms = (self._clock() - start) * 1000
        self.logger.adapter_request(self.retailer_id, url, response.status_code, elapsed_ms)

        error = self.map_status(response, url)
        # A 404 is a healthy answer from the upstream
        self.metrics.record_request(error is None or error.kind == ErrorKind.NOT_FOUND, elapsed_ms)
        if error is not None:
            if error.kind == ErrorKind.RATE_LIMIT:
                self.metrics.record_rate_limit_hit()
            raise error
        return response

    async def request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        """GET with admission, pacing, status mapping and retries."""
        return await self.retry_handler.execute(self._attempt, url, params, headers)

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        response = await self.request(url, params, headers)
        try:
            return response.json()
        except ValueError as e:
            raise self.error(f"Invalid JSON from {url}", ErrorKind.PARSING) from e

    async def get_text(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> str:
        response = await self.request(url, params, headers)
        return response.text

    def wrap_error(self, exc: Exception, operation: str) -> RetailerError:
        """Coerce any adapter failure into a RetailerError and log it."""
        if isinstance(exc, RetailerError):
            error = exc
        elif isinstance(exc, (KeyError, TypeError, ValueError, AttributeError)):
            error = self.error(f"Malformed upstream data: {exc}", ErrorKind.PARSING)
        else:
            error = self.error(f"Failed to {operation}: {exc}", ErrorKind.SERVER_ERROR)
        self.logger.adapter_error(
            self.retailer_id,
            operation=operation,
            error_kind=error.kind.value,
            error=error.message,
            status=error.status_code,
        )
        return error

    @contextmanager
    def translate_errors(self, operation: str) -> Iterator[None]:
        """Let RetailerErrors through and convert anything else, logging either way."""
        try:
            yield
        except RetailerError as e:
            self.wrap_error(e, operation)
            raise
        except Exception as e:
            raise self.wrap_error(e, operation) from e

    async def health_check(self, probe: Callable[[], Awaitable[Any]]) -> RetailerHealthStatus:
        """
        Run a lightweight probe and judge health from it and the metrics.

        Never raises; probe failures are reported in ``errors``.
        """
        min_success_rate, max_response_ms = (
            SCRAPING_HEALTH_THRESHOLDS if self.is_scraping else API_HEALTH_THRESHOLDS
        )
        errors: List[str] = []
        start = self._clock()
        try:
            await probe()
        except Exception as e:
            errors.append(str(self.wrap_error(e, "health_check")))
        response_time = (self._clock() - start) * 1000

        success_rate = self.metrics.success_rate
        is_healthy = (
            not errors
            and success_rate >= min_success_rate
            and response_time < max_response_ms
        )
        self.logger.health_check(self.retailer_id, is_healthy, round(response_time, 2), success_rate)
        return RetailerHealthStatus(
            retailer_id=self.retailer_id,
            is_healthy=is_healthy,
            response_time=response_time,
            success_rate=success_rate,
            last_checked=utc_now(),
            errors=errors,
        )

    def get_metrics(self) -> RetailerMetrics:
        return self.metrics.snapshot()
