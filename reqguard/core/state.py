"""Process-lifetime protection state owned by the composition root.

The stores are built once per application by ``build_protection_state`` and
bound to ``app.state.protection``; routes reach them through the request,
never through module globals.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from starlette.requests import HTTPConnection

from reqguard.adapters.csrf.base import AbstractCSRFTokenStore
from reqguard.adapters.csrf.in_memory import InMemoryCSRFTokenStore
from reqguard.adapters.rate_limit.base import AbstractRateLimitStore
from reqguard.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from reqguard.core.config import Settings, settings as default_settings
from reqguard.core.protection import ProtectionPipeline
from reqguard.core.sweeper import PeriodicSweeper


@dataclass
class ProtectionState:
    rate_limit_store: AbstractRateLimitStore
    csrf_store: AbstractCSRFTokenStore
    pipeline: ProtectionPipeline
    sweeper: PeriodicSweeper


def build_protection_state(
    settings: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> ProtectionState:
    """Construct the in-memory stores, pipeline and sweeper from settings.

    Args:
        settings: Settings to use; defaults to the global instance.
        clock: Time source shared by both stores (injected in tests).

    Returns:
        A fresh ProtectionState with empty stores.
    """
    cfg = settings or default_settings

    rate_limit_store = InMemoryRateLimitStore(clock=clock)
    csrf_store = InMemoryCSRFTokenStore(
        ttl_seconds=cfg.csrf.token_ttl_seconds,
        token_bytes=cfg.csrf.token_bytes,
        clock=clock,
    )
    pipeline = ProtectionPipeline(
        rate_limit_store=rate_limit_store,
        csrf_store=csrf_store,
        rate_limit_settings=cfg.rate_limit,
        csrf_settings=cfg.csrf,
        max_body_bytes=cfg.app.max_body_bytes,
    )
    sweeper = PeriodicSweeper(
        [csrf_store, rate_limit_store],
        interval_seconds=cfg.csrf.sweep_interval_seconds,
    )
    return ProtectionState(
        rate_limit_store=rate_limit_store,
        csrf_store=csrf_store,
        pipeline=pipeline,
        sweeper=sweeper,
    )


def get_protection_state(connection: HTTPConnection) -> ProtectionState:
    """Return the state bound to the application serving ``connection``."""
    return connection.app.state.protection
