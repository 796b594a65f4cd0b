"""Per-retailer rate limiting with fixed windows and polite spacing."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from restock.models.config import RateLimitConfig
from restock.models.data_models import RetailerType

# Floor on spacing between consecutive requests to a scraped storefront
SCRAPING_MIN_INTERVAL = 2.0

MINUTE = 60.0
HOUR = 3600.0


@dataclass
class RateLimitState:
    """Mutable window counters owned by the retailer's registry slot."""
    minute_window_start: Optional[float] = None
    minute_count: int = 0
    hour_window_start: Optional[float] = None
    hour_count: int = 0
    last_request_time: Optional[float] = None


def min_request_interval(rate_limit: RateLimitConfig, retailer_type: RetailerType) -> float:
    """Seconds that must separate consecutive requests to one retailer."""
    interval = MINUTE / rate_limit.requests_per_minute
    if retailer_type == RetailerType.SCRAPING:
        return max(interval, SCRAPING_MIN_INTERVAL)
    return interval


class RateLimiter:
    """Fixed one-minute and one-hour request windows for a single retailer.

    ``check_rate_limit`` is the non-blocking admission test; ``wait_for_slot``
    enforces the minimum spacing between requests by sleeping.
    """

    def __init__(
        self,
        rate_limit: RateLimitConfig,
        retailer_type: RetailerType,
        state: Optional[RateLimitState] = None,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            rate_limit: Per-minute and per-hour budgets
            retailer_type: Integration type, scraping raises the spacing floor
            state: Existing window state to continue from
            now: Clock function for time operations (default: time.monotonic)
            sleeper: Async sleep function (default: asyncio.sleep)
        """
        self.rate_limit = rate_limit
        self.retailer_type = retailer_type
        self.state = state if state is not None else RateLimitState()
        self._now = now
        self._sleep = sleeper

    @property
    def min_request_interval(self) -> float:
        return min_request_interval(self.rate_limit, self.retailer_type)

    def check_rate_limit(self) -> bool:
        """Admit one request if both windows have budget left.

        Returns:
            True if the request was counted, False if a window is exhausted
        """
        current_time = self._now()
        state = self.state

        if state.minute_window_start is None or current_time - state.minute_window_start >= MINUTE:
            state.minute_window_start = current_time
            state.minute_count = 0
        if state.hour_window_start is None or current_time - state.hour_window_start >= HOUR:
            state.hour_window_start = current_time
            state.hour_count = 0

        if state.minute_count >= self.rate_limit.requests_per_minute:
            return False
        if state.hour_count >= self.rate_limit.requests_per_hour:
            return False

        state.minute_count += 1
        state.hour_count += 1
        return True

    async def wait_for_slot(self) -> None:
        """Sleep until the minimum interval since the previous request has passed.

        The slot is reserved before sleeping, so concurrent callers queue up
        one interval apart instead of sharing the same wake-up time.
        """
        state = self.state
        current_time = self._now()
        scheduled = current_time
        if state.last_request_time is not None:
            scheduled = max(current_time, state.last_request_time + self.min_request_interval)
        state.last_request_time = scheduled
        if scheduled > current_time:
            await self._sleep(scheduled - current_time)

    def remaining(self) -> int:
        """Requests left in the current minute window, for monitoring."""
        state = self.state
        if state.minute_window_start is None or self._now() - state.minute_window_start >= MINUTE:
            return self.rate_limit.requests_per_minute
        return max(0, self.rate_limit.requests_per_minute - state.minute_count)
