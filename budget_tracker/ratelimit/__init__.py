"""Client-side rate limiting package."""

from budget_tracker.ratelimit.limiter import (
    TOO_MANY_ATTEMPTS_MESSAGE,
    RateLimiter,
)
from budget_tracker.ratelimit.store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)

__all__ = [
    "TOO_MANY_ATTEMPTS_MESSAGE",
    "RateLimiter",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
]
