"""In-memory, session-bound CSRF token store.

Notes:
- Per-process only, like the in-memory rate limit store.
- Thread-safe: every operation holds the store lock for its whole duration,
  so ``sweep`` decides expiry at deletion time and never races ``generate``.
- Issuing is idempotent while a token is live: a page firing several
  requests for the same session must not invalidate its own token.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable

from reqguard.adapters.csrf.base import AbstractCSRFTokenStore
from reqguard.core.logging import hash_for_log

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_TOKEN_BYTES = 32


@dataclass
class _TokenEntry:
    token: str
    expires_at: float


class InMemoryCSRFTokenStore(AbstractCSRFTokenStore):
    """CSRF tokens keyed by session id with expiry and lazy deletion."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        token_bytes: int = DEFAULT_TOKEN_BYTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the token store.

        Args:
            ttl_seconds: Lifetime of a freshly issued token.
            token_bytes: Random bytes per token; the hex token is twice as long.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If ttl_seconds or token_bytes are invalid.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if token_bytes < 16:
            raise ValueError("token_bytes must be >= 16")

        self._ttl = ttl_seconds
        self._token_bytes = token_bytes
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _TokenEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCSRFTokenStore(ttl_seconds={self._ttl}, size={len(self)})"

    def generate(self, session_id: str) -> str:
        if not session_id:
            raise ValueError("session_id must be a non-empty string")

        with self._lock:
            now = self._clock()
            entry = self._entries.get(session_id)
            if entry is not None and now < entry.expires_at:
                return entry.token

            token = secrets.token_hex(self._token_bytes)
            self._entries[session_id] = _TokenEntry(token=token, expires_at=now + self._ttl)
            size = len(self._entries)

        logger.debug(
            "csrf.token_issued",
            extra={"session_hash": hash_for_log(session_id), "store_size": size},
        )
        return token

    def validate(self, session_id: str, presented_token: str) -> bool:
        """Check ``presented_token`` against the live token of ``session_id``.

        An expired entry is deleted on the spot. The comparison is
        constant-time with respect to the token content.
        """
        if not session_id or not presented_token:
            return False

        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return False

            if self._clock() > entry.expires_at:
                del self._entries[session_id]
                logger.debug(
                    "csrf.token_expired",
                    extra={"session_hash": hash_for_log(session_id)},
                )
                return False

            stored = entry.token

        return hmac.compare_digest(stored.encode("utf-8"), presented_token.encode("utf-8"))

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [sid for sid, entry in self._entries.items() if entry.expires_at < now]
            for sid in expired:
                del self._entries[sid]
            remaining = len(self._entries)

        if expired:
            logger.info("csrf.sweep", extra={"evicted": len(expired), "store_size": remaining})
        return len(expired)
