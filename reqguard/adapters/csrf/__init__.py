"""CSRF token store adapters.

Same layout as the rate limit adapters: an abstract interface the pipeline
depends on and a process-local implementation.
"""

from reqguard.adapters.csrf.base import AbstractCSRFTokenStore
from reqguard.adapters.csrf.in_memory import InMemoryCSRFTokenStore

__all__ = ["AbstractCSRFTokenStore", "InMemoryCSRFTokenStore"]
