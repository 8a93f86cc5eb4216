"""Application factory for the FastAPI app.

Centralizes app construction (metadata, protection state, lifespan,
middleware, handlers, routers) and acts as the composition root: the rate
limit store, CSRF store and their sweeper are created here exactly once per
application and bound to ``app.state.protection``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from reqguard.api.routes import csrf_router, health_router
from reqguard.core.config import settings
from reqguard.core.dependencies import ProtectedRoute, validate_route_policies
from reqguard.core.exception_handlers import setup_exception_handlers
from reqguard.core.logging import configure_logging
from reqguard.core.middleware import request_id_middleware, security_headers_middleware
from reqguard.core.openapi import apply_openapi_customizations
from reqguard.core.state import ProtectionState, build_protection_state

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Check route policies, start the store sweeper, cancel it on shutdown."""
    validate_route_policies(app)
    state: ProtectionState = app.state.protection
    state.sweeper.start()
    try:
        yield
    finally:
        await state.sweeper.stop()


def create_app(*, protection_state: ProtectionState | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        protection_state: Pre-built stores (tests inject deterministic
            clocks this way); a fresh state is built from settings otherwise.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="reqguard",
        description=(
            "Request-protection layer for state-changing HTTP handlers: per-client "
            "fixed-window rate limiting per endpoint class and session-bound CSRF "
            "tokens, with 429/403 signalling, Retry-After and X-RateLimit-* headers."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.protection = protection_state or build_protection_state(settings)
    # Routes added straight on the app also run protection before body parsing
    app.router.route_class = ProtectedRoute

    # Middleware (the last registered runs first)
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(csrf_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    logger.info(
        "app.created",
        extra={
            "app_env": settings.app_env,
            "rate_limit_enabled": settings.rate_limit.enabled,
            "csrf_enabled": settings.csrf.enabled,
            "rate_limit_classes": sorted(settings.rate_limit.classes),
        },
    )
    return app
