"""In-memory fixed-window rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the whole read-modify-write of ``check``.
- Windows start at a key's first request (not aligned to wall-clock
  boundaries) and roll over lazily on the next access.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from reqguard.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    window_start: float
    count: int


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Fixed-window counters keyed by client identifier.

    Unlike a limiter bound to one configuration, the limit and window are
    passed on every call so a single store can serve every endpoint class.

    Important:
        The state lives in this process only. Behind several Uvicorn or
        Gunicorn workers each worker enforces its own independent limits.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._state_by_key: dict[str, _WindowState] = {}
        # Longest window seen so far; sweep uses it to decide what is stale.
        self._max_window_seconds = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryRateLimitStore(keys={len(self)})"

    def _get_or_reset_state(self, identifier: str, now: float, window_seconds: float) -> _WindowState:
        """Return the live window for ``identifier``, starting a new one if expired.

        Must be called with the lock held.
        """
        state = self._state_by_key.get(identifier)
        if state is None or now - state.window_start >= window_seconds:
            state = _WindowState(window_start=now, count=0)
            self._state_by_key[identifier] = state
        return state

    def check(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one attempt for ``identifier`` and report the remaining quota.

        Args:
            identifier: Client key (fingerprint, optionally namespaced).
            limit: Maximum allowed attempts per window; ``<= 0`` rejects all.
            window_ms: Window length in milliseconds; ``0`` means every call
                starts a fresh window.

        Returns:
            RateLimitResult with the decision and window metadata.

        Raises:
            ValueError: If identifier is empty or window_ms is negative.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        if window_ms < 0:
            raise ValueError("window_ms must be >= 0")

        window_seconds = window_ms / 1000

        with self._lock:
            now = self._clock()
            if window_seconds > self._max_window_seconds:
                self._max_window_seconds = window_seconds

            state = self._get_or_reset_state(identifier, now, window_seconds)
            reset_at = state.window_start + window_seconds

            if state.count >= limit:
                return RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after_seconds=max(1, math.ceil(reset_at - now)),
                )

            state.count += 1
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - state.count),
                reset_at=reset_at,
                retry_after_seconds=None,
            )

    def sweep(self) -> int:
        """Forget identifiers whose last window ended before the longest window.

        Lazy rollover in ``check`` already handles correctness; this only
        keeps the table from growing with one-off clients.
        """
        with self._lock:
            now = self._clock()
            horizon = self._max_window_seconds
            stale = [
                key
                for key, state in self._state_by_key.items()
                if now - state.window_start >= horizon
            ]
            for key in stale:
                del self._state_by_key[key]

        if stale:
            logger.debug("rate_limit.sweep", extra={"evicted": len(stale)})
        return len(stale)
