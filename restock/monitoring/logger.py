"""Structured logging for retailer monitoring."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger emitting one JSON object per line."""

    def __init__(self, name: str = "restock", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, retailer, status, attempt, elapsed_ms,
                      cb_state, error_kind, error
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def warning(self, event: str, **kwargs) -> None:
        self.log(event, level=logging.WARNING, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        self.log(event, level=logging.ERROR, **kwargs)

    def debug(self, event: str, **kwargs) -> None:
        self.log(event, level=logging.DEBUG, **kwargs)

    def adapter_request(self, retailer: str, url: str, status: int, elapsed_ms: float) -> None:
        self.debug("adapter_request", retailer=retailer, url=url, status=status, elapsed_ms=elapsed_ms)

    def adapter_error(
        self,
        retailer: str,
        operation: str,
        error_kind: str,
        error: str,
        status: Optional[int] = None
    ) -> None:
        self.warning(
            "adapter_error",
            retailer=retailer,
            operation=operation,
            error_kind=error_kind,
            error=error,
            status=status,
        )

    def circuit_breaker_state(self, retailer: str, state: str) -> None:
        self.log("circuit_breaker", retailer=retailer, cb_state=state)

    def circuit_skip(self, retailer: str, operation: str, error_kind: str) -> None:
        self.debug("circuit_skip", retailer=retailer, operation=operation, error_kind=error_kind)

    def rate_limited(self, retailer: str) -> None:
        self.warning("rate_limited", retailer=retailer)

    def health_check(self, retailer: str, healthy: bool, elapsed_ms: float, success_rate: float) -> None:
        self.log(
            "health_check",
            retailer=retailer,
            healthy=healthy,
            elapsed_ms=elapsed_ms,
            success_rate=success_rate,
        )

    def retailer_status(self, retailer: str, active: bool) -> None:
        self.log("retailer_status", retailer=retailer, active=active)

    def metrics_update(self, retailer: str, total: int, success_rate: float, avg_ms: float) -> None:
        self.log("metrics_update", retailer=retailer, total=total, success_rate=success_rate, avg_ms=avg_ms)

    def candidate_checked(self, retailer: str, url: str, status: str, score: float, reason: str) -> None:
        self.log("candidate_checked", retailer=retailer, url=url, status=status, score=score, reason=reason)
