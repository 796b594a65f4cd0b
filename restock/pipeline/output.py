"""JSON output formatting for availability results and smoke reports.

Decimals are written as strings so prices survive the round trip exactly;
timestamps are ISO-8601 UTC.
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from restock.models.data_models import (
    AvailabilityResponse,
    CircuitBreakerSnapshot,
    RetailerHealthStatus,
    RetailerMetrics,
    SmokeReport,
)


def _price(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def format_response(response: AvailabilityResponse) -> Dict[str, Any]:
    return {
        "product_id": response.product_id,
        "retailer_id": response.retailer_id,
        "in_stock": response.in_stock,
        "availability_status": response.availability_status.value,
        "price": _price(response.price),
        "original_price": _price(response.original_price),
        "product_url": response.product_url,
        "cart_url": response.cart_url,
        "stock_level": response.stock_level,
        "store_locations": [
            {
                "store_id": store.store_id,
                "store_name": store.store_name,
                "city": store.city,
                "state": store.state,
                "zip_code": store.zip_code,
                "distance_miles": store.distance_miles,
                "in_stock": store.in_stock,
                "stock_level": store.stock_level,
            }
            for store in response.store_locations
        ],
        "last_updated": response.last_updated.isoformat(),
        "metadata": dict(response.metadata),
    }


def format_health(status: RetailerHealthStatus) -> Dict[str, Any]:
    return {
        "retailer_id": status.retailer_id,
        "is_healthy": status.is_healthy,
        "response_time_ms": round(status.response_time, 2),
        "success_rate": round(status.success_rate, 4),
        "last_checked": status.last_checked.isoformat(),
        "circuit_breaker_state": status.circuit_breaker_state.value,
        "errors": list(status.errors),
    }


def format_metrics(metrics: RetailerMetrics) -> Dict[str, Any]:
    return {
        "retailer_id": metrics.retailer_id,
        "total_requests": metrics.total_requests,
        "successful_requests": metrics.successful_requests,
        "failed_requests": metrics.failed_requests,
        "average_response_time_ms": round(metrics.average_response_time, 2),
        "rate_limit_hits": metrics.rate_limit_hits,
        "circuit_breaker_trips": metrics.circuit_breaker_trips,
        "last_request_time": metrics.last_request_time.isoformat() if metrics.last_request_time else None,
    }


def format_breaker(snapshot: CircuitBreakerSnapshot) -> Dict[str, Any]:
    return {
        "retailer_id": snapshot.retailer_id,
        "state": snapshot.state.value,
        "failure_count": snapshot.failure_count,
        "trips": snapshot.trips,
    }


class JSONOutputFormatter:
    """
    Formats smoke reports as JSON.

    Example output structure:
    {
        "summary": {"query": "...", "elapsed_seconds": 3.2, "healthy": 3, "retailers": 4},
        "health": [...],
        "search_results": [...],
        "availability": [...],
        "metrics": [...],
        "circuit_breakers": [...]
    }
    """

    def format(self, report: SmokeReport) -> Dict[str, Any]:
        return {
            "summary": self._format_summary(report),
            "health": [format_health(h) for h in report.health],
            "search_results": self.format_responses(report.search_results),
            "availability": self.format_responses(report.availability),
            "metrics": [format_metrics(m) for m in report.metrics],
            "circuit_breakers": [format_breaker(b) for b in report.circuit_breakers],
        }

    def format_responses(self, responses: List[AvailabilityResponse]) -> List[Dict[str, Any]]:
        return [format_response(r) for r in responses]

    def _format_summary(self, report: SmokeReport) -> Dict[str, Any]:
        return {
            "query": report.query,
            "product_id": report.product_id,
            "elapsed_seconds": round(report.elapsed_seconds, 2),
            "retailers": len(report.health),
            "healthy": sum(1 for h in report.health if h.is_healthy),
            "search_results": len(report.search_results),
            "in_stock": sum(1 for r in report.availability if r.in_stock),
        }

    def save(self, report: SmokeReport, path: str = "out/smoke.json") -> None:
        """
        Save formatted report to a JSON file, creating parent directories.

        Args:
            report: Smoke report to save
            path: Output file path
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.format(report), f, indent=2, ensure_ascii=False, default=str)
