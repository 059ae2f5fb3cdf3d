"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start with
an in-memory counter store and later migrate to Redis or another shared store
without changing the limiter or the API layer.
"""

from rate_governor.adapters.rate_limit.base import (
    AbstractCounterStore,
    Decision,
    Rate,
    WindowCounter,
)
from rate_governor.adapters.rate_limit.in_memory import InMemoryWindowCounterStore
from rate_governor.adapters.rate_limit.limiter import RateLimiter

__all__ = [
    "AbstractCounterStore",
    "Decision",
    "InMemoryWindowCounterStore",
    "Rate",
    "RateLimiter",
    "WindowCounter",
]
