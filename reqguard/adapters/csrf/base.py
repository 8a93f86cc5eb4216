"""CSRF token store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCSRFTokenStore(ABC):
    """One rotating secret per session id.

    Implementations must make each operation atomic per session id. A shared
    backend needs atomic set-if-absent for ``generate`` and compare-and-delete
    for lazy expiry in ``validate``.
    """

    @abstractmethod
    def generate(self, session_id: str) -> str:
        """Return the live token for ``session_id``, minting one if none is live."""
        raise NotImplementedError

    @abstractmethod
    def validate(self, session_id: str, presented_token: str) -> bool:
        """Return True when ``presented_token`` is the live token of ``session_id``."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, session_id: str) -> None:
        """Revoke the token of ``session_id`` (logout, password change)."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Delete expired entries; return how many were deleted."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
