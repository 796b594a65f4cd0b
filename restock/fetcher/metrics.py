"""Per-retailer request metrics."""

from datetime import datetime
from typing import Optional

from restock.models.data_models import RetailerMetrics, utc_now
from restock.monitoring.logger import StructuredLogger

# Emit a metrics_update log line every N requests
LOG_EVERY = 10


class MetricsRecorder:
    """Counters for one retailer, monotonic until an explicit reset."""

    def __init__(self, retailer_id: str, logger: Optional[StructuredLogger] = None):
        self.retailer_id = retailer_id
        self.logger = logger
        self.reset()

    def reset(self) -> None:
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.average_response_time = 0.0
        self.rate_limit_hits = 0
        self.circuit_breaker_trips = 0
        self.last_request_time: Optional[datetime] = None

    def record_request(self, success: bool, response_time_ms: float) -> None:
        """Count a completed request and fold its latency into the running average."""
        self.total_requests += 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

        self.average_response_time += (response_time_ms - self.average_response_time) / self.total_requests
        self.last_request_time = utc_now()

        if self.logger and self.total_requests % LOG_EVERY == 0:
            self.logger.metrics_update(
                self.retailer_id,
                total=self.total_requests,
                success_rate=self.success_rate,
                avg_ms=round(self.average_response_time, 2),
            )

    def record_rate_limit_hit(self) -> None:
        self.rate_limit_hits += 1

    def record_circuit_trip(self) -> None:
        self.circuit_breaker_trips += 1

    @property
    def success_rate(self) -> float:
        """Fraction of successful requests, 1.0 before any request."""
        if self.total_requests == 0:
            return 1.0
        return self.successful_requests / self.total_requests

    def snapshot(self) -> RetailerMetrics:
        return RetailerMetrics(
            retailer_id=self.retailer_id,
            total_requests=self.total_requests,
            successful_requests=self.successful_requests,
            failed_requests=self.failed_requests,
            average_response_time=self.average_response_time,
            rate_limit_hits=self.rate_limit_hits,
            circuit_breaker_trips=self.circuit_breaker_trips,
            last_request_time=self.last_request_time,
        )
