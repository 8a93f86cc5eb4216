"""Rate limit store interfaces.

The pipeline depends on this abstraction (not the concrete implementation)
so the process-local store can later be swapped for a shared one (e.g.,
Redis with atomic increments and TTLs) without touching the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Whole seconds to wait when blocked, None when allowed.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class AbstractRateLimitStore(ABC):
    """Interface for per-identifier fixed-window counters."""

    @abstractmethod
    def check(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one attempt for ``identifier`` against ``limit`` per ``window_ms``.

        Rejected attempts are not counted.

        Raises:
            StoreInternalError: If the backing store cannot serve the request.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Drop windows that have already ended; return how many were dropped."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
