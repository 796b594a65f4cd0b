"""Core data models for retailer availability aggregation."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class AvailabilityStatus(Enum):
    """Uniform availability classification shared by all retailers."""
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    PRE_ORDER = "pre_order"
    DISCONTINUED = "discontinued"


class RetailerType(Enum):
    """How a retailer is integrated."""
    API = "api"
    AFFILIATE = "affiliate"
    SCRAPING = "scraping"


class CandidateStatus(Enum):
    """Lifecycle of a generated URL candidate."""
    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"
    LIVE = "live"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HalfOpenToken:
    """Token for tracking the single half-open trial request."""
    retailer_id: str
    timestamp: float


@dataclass(frozen=True)
class AvailabilityRequest:
    """
    Immutable availability query for one catalog item.

    ``retailer_ids`` optionally restricts the query to a subset of retailers;
    the orchestrator still intersects it with the active set.
    """
    product_id: str
    sku: Optional[str] = None
    upc: Optional[str] = None
    zip_code: Optional[str] = None
    radius_miles: Optional[int] = None
    retailer_ids: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id is required")
        if self.retailer_ids is not None and not isinstance(self.retailer_ids, tuple):
            object.__setattr__(self, "retailer_ids", tuple(self.retailer_ids))


@dataclass(frozen=True)
class StoreLocation:
    """Physical store stock for an item."""
    store_id: str
    store_name: str
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    phone: Optional[str] = None
    distance_miles: Optional[float] = None
    in_stock: bool = False
    stock_level: Optional[int] = None
    price: Optional[Decimal] = None


@dataclass(frozen=True)
class AvailabilityResponse:
    """Uniform availability signal produced by a retailer adapter."""
    product_id: str
    retailer_id: str
    in_stock: bool
    availability_status: AvailabilityStatus
    product_url: str
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    cart_url: Optional[str] = None
    stock_level: Optional[int] = None
    store_locations: Tuple[StoreLocation, ...] = ()
    last_updated: datetime = field(default_factory=utc_now)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze collections so a response cannot be altered after hand-off
        object.__setattr__(self, "store_locations", tuple(self.store_locations))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


@dataclass
class RetailerHealthStatus:
    """Result of a retailer health probe."""
    retailer_id: str
    is_healthy: bool
    response_time: float  # milliseconds
    success_rate: float  # Range 0.0-1.0
    last_checked: datetime
    errors: List[str] = field(default_factory=list)
    circuit_breaker_state: CircuitState = CircuitState.CLOSED


@dataclass
class RetailerMetrics:
    """Snapshot of per-retailer request counters."""
    retailer_id: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0  # milliseconds
    rate_limit_hits: int = 0
    circuit_breaker_trips: int = 0
    last_request_time: Optional[datetime] = None


@dataclass
class CircuitBreakerSnapshot:
    """Observable view of a single breaker."""
    retailer_id: str
    state: CircuitState
    failure_count: int
    last_failure_time: float
    trips: int


@dataclass(frozen=True)
class UrlCandidate:
    """A plausible product page URL for a retailer."""
    url: str
    score: float
    reason: str
    pattern_id: str


@dataclass(frozen=True)
class CandidateInput:
    """Product identity used to generate URL candidates."""
    product_id: str
    retailer_slug: str
    sku: Optional[str] = None
    upc: Optional[str] = None
    name: Optional[str] = None
    set_name: Optional[str] = None


@dataclass
class CandidateEvaluation:
    """Signals extracted from a fetched candidate page."""
    product_page: bool
    price: bool
    cta: bool
    jsonld: bool
    signals: List[str] = field(default_factory=list)


@dataclass
class CandidateRecord:
    """Stored candidate row tracked by the candidate checker."""
    product_id: str
    retailer_id: str
    retailer_slug: str
    url: str
    status: CandidateStatus = CandidateStatus.UNKNOWN
    score: float = 0.0
    reason: str = ""
    pattern_id: str = ""
    last_checked_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class SmokeReport:
    """Result of a smoke run across configured retailers."""
    query: str
    product_id: Optional[str]
    elapsed_seconds: float
    health: List[RetailerHealthStatus]
    search_results: List[AvailabilityResponse]
    availability: List[AvailabilityResponse]
    metrics: List[RetailerMetrics]
    circuit_breakers: List[CircuitBreakerSnapshot]
