"""Retry handler with exponential backoff and jitter."""

import asyncio
import random
from typing import Any, Awaitable, Callable

from restock.models.errors import ErrorKind, RetailerError


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter_max: float = 0.5
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: min(max_delay, (base_delay * (2 ** attempt)) + random_jitter)

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap in seconds
        jitter_max: Maximum jitter to add in seconds

    Returns:
        Delay in seconds
    """
    exponential_delay = base_delay * (2 ** attempt)
    jitter = random.uniform(0, jitter_max)
    return min(max_delay, exponential_delay + jitter)


class RetryHandler:
    """
    Retries an adapter operation on retryable RetailerErrors.

    Local rate-limiter rejections (RATE_LIMIT without an upstream status)
    are never retried.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter_max: float = 0.5,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_max = jitter_max
        self._sleep = sleeper

    def is_retryable(self, error: BaseException) -> bool:
        """Check if error should be retried."""
        if not isinstance(error, RetailerError):
            return False
        if error.kind == ErrorKind.RATE_LIMIT and error.status_code is None:
            return False
        return error.retryable

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute coroutine function with retry logic.

        Raises:
            Exception: The last error once retries are exhausted or the
                error is not retryable
        """
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_retries or not self.is_retryable(e):
                    raise
                delay = calculate_backoff_delay(
                    attempt,
                    self.base_delay,
                    self.max_delay,
                    self.jitter_max
                )
                attempt += 1
                await self._sleep(delay)
