"""Retailer orchestrator: registry, concurrent fan-out, health and management."""

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from restock.fetcher.circuit_breaker import CircuitBreaker, Clock
from restock.fetcher.http_client import AsyncHTTPClient
from restock.fetcher.metrics import MetricsRecorder
from restock.fetcher.rate_limiter import RateLimiter, RateLimitState, min_request_interval
from restock.fetcher.retry_handler import RetryHandler
from restock.models.config import RetailerConfig, ServiceConfig
from restock.models.data_models import (
    AvailabilityRequest,
    AvailabilityResponse,
    CircuitBreakerSnapshot,
    CircuitState,
    HalfOpenToken,
    RetailerHealthStatus,
    RetailerMetrics,
    utc_now,
)
from restock.models.errors import ErrorKind, RetailerError
from restock.monitoring.logger import StructuredLogger
from restock.retailers import AdapterToolkit, RetailerAdapter, create_adapter
from restock.urls.store import CandidateStore

AdapterFactory = Callable[[AdapterToolkit], RetailerAdapter]

# Requests one adapter call may issue: a hint page, three searches and a product page
MAX_REQUESTS_PER_CALL = 5


@dataclass
class RetailerSlot:
    """Everything the orchestrator owns for one registered retailer."""
    config: RetailerConfig
    adapter: RetailerAdapter
    http_client: AsyncHTTPClient
    rate_limit_state: RateLimitState
    metrics: MetricsRecorder


class RetailerOrchestrator:
    """
    Owns the retailer registry and fans queries out across active retailers.

    Public query operations never raise: per-retailer failures and timeouts
    are logged, recorded on the circuit breaker and left out of the result.
    """

    def __init__(
        self,
        config: ServiceConfig,
        logger: Optional[StructuredLogger] = None,
        adapter_factories: Optional[Dict[str, AdapterFactory]] = None,
        transports: Optional[Dict[str, httpx.AsyncBaseTransport]] = None,
        candidate_store: Optional[CandidateStore] = None,
        clock: Optional[Clock] = None,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize orchestrator and build the registry.

        Args:
            config: Service configuration including the retailer list
            logger: Structured logger shared with adapters
            adapter_factories: Per-retailer adapter overrides, built on the
                orchestrator's toolkit
            transports: Per-retailer httpx transports (mock servers, tests)
            candidate_store: Source of live URL hints for scraping adapters
            clock: Circuit breaker clock
            now: Clock for rate limiting
            sleeper: Async sleep used by rate limiting and retries
        """
        self.config = config
        self.logger = logger or StructuredLogger(level=config.log_level)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=config.circuit_breaker_failure_threshold,
            cooldown_seconds=config.circuit_breaker_cooldown,
            clock=clock,
            logger=self.logger,
        )
        self._now = now
        self._sleep = sleeper
        self._health_task: Optional[asyncio.Task] = None
        self._latest_health: Dict[str, RetailerHealthStatus] = {}
        self._started = False
        self.registry: Dict[str, RetailerSlot] = {}

        for retailer_config in config.retailers:
            slot = self._build_slot(
                retailer_config,
                (adapter_factories or {}).get(retailer_config.id),
                (transports or {}).get(retailer_config.id),
                candidate_store,
            )
            if slot is not None:
                self.registry[retailer_config.id] = slot

    def _build_slot(
        self,
        retailer_config: RetailerConfig,
        factory: Optional[AdapterFactory],
        transport: Optional[httpx.AsyncBaseTransport],
        candidate_store: Optional[CandidateStore]
    ) -> Optional[RetailerSlot]:
        state = RateLimitState()
        metrics = MetricsRecorder(retailer_config.id, self.logger)
        http_client = AsyncHTTPClient.for_retailer(retailer_config, transport=transport)
        toolkit = AdapterToolkit(
            retailer_config,
            http_client,
            RateLimiter(retailer_config.rate_limit, retailer_config.type, state, self._now, self._sleep),
            metrics,
            self.logger,
            RetryHandler(
                max_retries=retailer_config.retry.max_retries,
                base_delay=retailer_config.retry.retry_delay,
                sleeper=self._sleep,
            ),
        )
        try:
            adapter = factory(toolkit) if factory else create_adapter(retailer_config, toolkit, candidate_store)
        except ValueError as e:
            # Missing credentials or unsupported retailer: leave it unregistered
            self.logger.warning("retailer_skipped", retailer=retailer_config.id, error=str(e))
            return None
        return RetailerSlot(retailer_config, adapter, http_client, state, metrics)

    # Lifecycle

    async def start(self, monitor_health: bool = False) -> None:
        if not self._started:
            for slot in self.registry.values():
                await slot.http_client.open()
            self._started = True
            self.logger.log("orchestrator_start", retailers=list(self.registry))
        if monitor_health:
            self.start_health_monitoring()

    async def shutdown(self) -> None:
        await self.stop_health_monitoring()
        for slot in self.registry.values():
            await slot.http_client.aclose()
        self._started = False
        self.logger.log("orchestrator_shutdown")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    # Fan-out

    def call_timeout(self, retailer_config: RetailerConfig) -> float:
        """
        Upper bound for one adapter call.

        An explicit ``call_timeout`` wins. Otherwise ``adapter_timeout`` is
        raised until it covers the request spacing of a full lookup plus one
        HTTP timeout.
        """
        if retailer_config.call_timeout:
            return retailer_config.call_timeout
        spacing = MAX_REQUESTS_PER_CALL * min_request_interval(retailer_config.rate_limit, retailer_config.type)
        return max(self.config.adapter_timeout, spacing + retailer_config.timeout)

    def _active_slots(self, *restrictions: Optional[Iterable[str]]) -> List[RetailerSlot]:
        slots = [slot for slot in self.registry.values() if slot.config.is_active]
        for restriction in restrictions:
            if restriction is not None:
                allowed = set(restriction)
                slots = [slot for slot in slots if slot.config.id in allowed]
        return slots

    def _callable_slots(self, operation: str, *restrictions: Optional[Iterable[str]]) -> List[RetailerSlot]:
        slots = []
        for slot in self._active_slots(*restrictions):
            if self.circuit_breaker.is_open(slot.config.id):
                self.logger.circuit_skip(slot.config.id, operation, ErrorKind.CIRCUIT_OPEN.value)
                continue
            slots.append(slot)
        return slots

    def _record_failure(self, slot: RetailerSlot, error: RetailerError, operation: str) -> None:
        if self.circuit_breaker.record_failure(slot.config.id):
            slot.metrics.record_circuit_trip()
        self.logger.adapter_error(
            slot.config.id,
            operation=operation,
            error_kind=error.kind.value,
            error=error.message,
            status=error.status_code,
        )

    async def _invoke(
        self,
        slot: RetailerSlot,
        operation: str,
        call: Callable[[RetailerAdapter], Awaitable[Any]]
    ) -> Optional[Any]:
        """Run one adapter call under the breaker and a timeout; None on any failure."""
        retailer_id = slot.config.id
        allowed = self.circuit_breaker.should_allow(retailer_id)
        if allowed is False:
            self.logger.circuit_skip(retailer_id, operation, ErrorKind.CIRCUIT_OPEN.value)
            return None
        token = allowed if isinstance(allowed, HalfOpenToken) else None

        timeout = self.call_timeout(slot.config)
        try:
            result = await asyncio.wait_for(call(slot.adapter), timeout=timeout)
        except asyncio.CancelledError:
            if token is not None:
                self.circuit_breaker.release(retailer_id, token)
            raise
        except asyncio.TimeoutError:
            error = RetailerError(f"{operation} timed out after {timeout}s", retailer_id, ErrorKind.NETWORK)
            self._record_failure(slot, error, operation)
            return None
        except RetailerError as e:
            if e.kind == ErrorKind.NOT_FOUND:
                self.circuit_breaker.record_success(retailer_id, token)
                return None
            self._record_failure(slot, e, operation)
            return None
        except Exception as e:
            error = RetailerError(f"Unexpected adapter failure: {e}", retailer_id, ErrorKind.SERVER_ERROR)
            self._record_failure(slot, error, operation)
            return None

        self.circuit_breaker.record_success(retailer_id, token)
        return result

    def _accept(self, response: Any, expected_retailer: str) -> bool:
        """Only responses for the called, still-active retailer are returned."""
        if not isinstance(response, AvailabilityResponse):
            return False
        slot = self.registry.get(response.retailer_id)
        if response.retailer_id != expected_retailer or slot is None or not slot.config.is_active:
            self.logger.warning(
                "response_dropped",
                retailer=expected_retailer,
                response_retailer=response.retailer_id,
            )
            return False
        return True

    async def _ensure_started(self) -> None:
        if not self._started:
            await self.start()

    async def check_availability(
        self,
        request: AvailabilityRequest,
        retailer_ids: Optional[Iterable[str]] = None
    ) -> List[AvailabilityResponse]:
        """
        Query every active retailer (optionally restricted) concurrently.

        Returns:
            Successful responses only; [] when every retailer failed
        """
        await self._ensure_started()
        slots = self._callable_slots("check_availability", retailer_ids, request.retailer_ids)
        results = await asyncio.gather(*(
            self._invoke(slot, "check_availability", lambda adapter: adapter.check_availability(request))
            for slot in slots
        ))
        return [
            response
            for slot, response in zip(slots, results)
            if response is not None and self._accept(response, slot.config.id)
        ]

    async def search_products(
        self,
        query: str,
        retailer_ids: Optional[Iterable[str]] = None
    ) -> List[AvailabilityResponse]:
        """Search every active retailer concurrently and flatten the results."""
        await self._ensure_started()
        slots = self._callable_slots("search_products", retailer_ids)
        results = await asyncio.gather(*(
            self._invoke(slot, "search_products", lambda adapter: adapter.search_products(query))
            for slot in slots
        ))
        merged: List[AvailabilityResponse] = []
        for slot, responses in zip(slots, results):
            for response in responses or []:
                if self._accept(response, slot.config.id):
                    merged.append(response)
        return merged

    # Health

    async def _probe(self, slot: RetailerSlot) -> RetailerHealthStatus:
        retailer_id = slot.config.id
        try:
            status = await asyncio.wait_for(
                slot.adapter.get_health_status(),
                timeout=self.call_timeout(slot.config),
            )
        except Exception as e:
            status = RetailerHealthStatus(
                retailer_id=retailer_id,
                is_healthy=False,
                response_time=0.0,
                success_rate=slot.metrics.success_rate,
                last_checked=utc_now(),
                errors=[f"health probe failed: {e!r}"],
            )
        status.circuit_breaker_state = self.circuit_breaker.state(retailer_id)
        if status.circuit_breaker_state == CircuitState.OPEN:
            status.is_healthy = False
        return status

    async def get_retailer_health_status(self) -> List[RetailerHealthStatus]:
        """Probe all active retailers concurrently. Never raises."""
        await self._ensure_started()
        statuses = await asyncio.gather(*(self._probe(slot) for slot in self._active_slots()))
        for status in statuses:
            self._latest_health[status.retailer_id] = status
        return list(statuses)

    def latest_health(self) -> List[RetailerHealthStatus]:
        return list(self._latest_health.values())

    async def _health_loop(self) -> None:
        while True:
            await self.get_retailer_health_status()
            await asyncio.sleep(self.config.health_check_interval)

    def start_health_monitoring(self) -> None:
        if self._health_task is not None and not self._health_task.done():
            return
        self._health_task = asyncio.create_task(self._health_loop())
        self.logger.log("health_monitoring", running=True, interval=self.config.health_check_interval)

    async def stop_health_monitoring(self) -> None:
        task, self._health_task = self._health_task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        self.logger.log("health_monitoring", running=False)

    @property
    def is_monitoring(self) -> bool:
        return self._health_task is not None and not self._health_task.done()

    # Management

    def set_retailer_status(self, retailer_id: str, is_active: bool) -> bool:
        """Enable or disable a retailer; re-enabling resets its breaker."""
        slot = self.registry.get(retailer_id)
        if slot is None:
            return False
        if slot.config.is_active == is_active:
            return True
        slot.config.is_active = is_active
        if is_active:
            self.circuit_breaker.reset(retailer_id)
        self.logger.retailer_status(retailer_id, is_active)
        return True

    def reset_circuit_breaker(self, retailer_id: str) -> bool:
        if retailer_id not in self.registry:
            return False
        self.circuit_breaker.reset(retailer_id)
        return True

    def reset_metrics(self, retailer_id: str) -> bool:
        slot = self.registry.get(retailer_id)
        if slot is None:
            return False
        slot.metrics.reset()
        return True

    # Observability

    def get_retailer_metrics(self) -> List[RetailerMetrics]:
        return [slot.metrics.snapshot() for slot in self.registry.values()]

    def get_circuit_breaker_metrics(self) -> Dict[str, CircuitBreakerSnapshot]:
        return {retailer_id: self.circuit_breaker.snapshot(retailer_id) for retailer_id in self.registry}

    def get_retailer_config(self, retailer_id: str) -> Optional[RetailerConfig]:
        slot = self.registry.get(retailer_id)
        return slot.config if slot else None

    def get_all_retailer_configs(self) -> List[RetailerConfig]:
        return [slot.config for slot in self.registry.values()]

    def get_all_retailers(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": slot.config.id,
                "name": slot.config.name,
                "slug": slot.config.slug,
                "type": slot.config.type.value,
                "is_active": slot.config.is_active,
                "website": slot.config.website or slot.config.base_url,
            }
            for slot in self.registry.values()
        ]
