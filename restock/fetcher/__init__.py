"""Resilience scaffolding: rate limiting, circuit breaking, retries, metrics."""

from .circuit_breaker import CircuitBreaker
from .metrics import MetricsRecorder
from .rate_limiter import RateLimiter, RateLimitState

__all__ = ["CircuitBreaker", "MetricsRecorder", "RateLimiter", "RateLimitState"]
