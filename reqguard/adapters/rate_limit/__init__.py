"""Rate limit store adapters.

This package provides a small abstraction layer so the protection pipeline
starts with an in-memory store and can later migrate to Redis or another
shared store without changing the API layer.
"""

from reqguard.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from reqguard.adapters.rate_limit.in_memory import InMemoryRateLimitStore

__all__ = ["AbstractRateLimitStore", "InMemoryRateLimitStore", "RateLimitResult"]
