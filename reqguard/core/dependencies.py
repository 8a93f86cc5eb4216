"""FastAPI glue for the protection pipeline.

Routes declare their protection next to the path:

    router = APIRouter(route_class=ProtectedRoute)

    @router.post(
        "/customers",
        dependencies=[Depends(require_protection("api"))],
    )
    async def create_customer(payload: CustomerIn): ...

Design goals:
- Minimal coupling: routes depend on a dependency factory only.
- Protection runs before FastAPI reads the body. ``ProtectedRoute`` finds
  the policy declared by ``require_protection`` and wraps the route handler,
  so a malformed or oversized body is still charged and CSRF-checked
  before it can earn a 422.
- Early responses are returned as built by the pipeline, so the
  429/403/413 bodies keep their exact shape.
- Routes outside ``ProtectedRoute`` still get enforcement from the
  dependency itself (after body parsing); the rejection travels as
  ``ProtectionRejected`` and its exception handler returns it verbatim.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.dependencies.models import Dependant
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from reqguard.core.config import RateLimitConfig
from reqguard.core.protection import ProtectionPipeline, ProtectionPolicy, RateLimitSpec
from reqguard.core.state import get_protection_state

# Attribute carrying the policy on dependencies built by require_protection
POLICY_ATTR = "protection_policy"


class ProtectionRejected(Exception):
    """Carries the early response produced by the pipeline."""

    def __init__(self, response: JSONResponse) -> None:
        super().__init__(response.status_code)
        self.response = response


def get_protection_pipeline(request: Request) -> ProtectionPipeline:
    return get_protection_state(request).pipeline


def require_protection(
    rate_limit: RateLimitSpec | None = None,
    *,
    require_csrf: bool | None = None,
    max_body_bytes: int | None = None,
) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a dependency enforcing rate limit ``rate_limit``, CSRF and body size.

    Endpoint class names are checked against the serving application's
    catalog when it starts (see ``validate_route_policies``).

    Args:
        rate_limit: Endpoint class name (``auth``, ``api``, ``health``,
            ``upload`` or any configured class), an inline RateLimitConfig,
            or None to skip rate limiting.
        require_csrf: Pass False to exempt an unsafe route from CSRF.
        max_body_bytes: Per-route body cap; None keeps the app default.

    Returns:
        Async dependency for ``Depends``.
    """
    policy = ProtectionPolicy(
        rate_limit=rate_limit,
        require_csrf=require_csrf,
        max_body_bytes=max_body_bytes,
    )

    async def enforce_protection(request: Request, response: Response) -> None:
        # Already decided (and charged) by ProtectedRoute
        if getattr(request.state, "protection_decision", None) is not None:
            return
        pipeline = get_protection_pipeline(request)
        decision = pipeline.protect(request, policy)
        if decision.early_response is not None:
            raise ProtectionRejected(decision.early_response)
        pipeline.attach_rate_limit_headers(response, decision)

    setattr(enforce_protection, POLICY_ATTR, policy)
    return enforce_protection


def route_protection_policy(dependant: Dependant) -> ProtectionPolicy | None:
    """Return the first policy declared anywhere in ``dependant``'s tree."""
    for sub_dependant in dependant.dependencies:
        policy = getattr(sub_dependant.call, POLICY_ATTR, None)
        if policy is None:
            policy = route_protection_policy(sub_dependant)
        if policy is not None:
            return policy
    return None


class ProtectedRoute(APIRoute):
    """APIRoute that runs the protection pipeline before the body is read."""

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        route_handler = super().get_route_handler()
        policy = route_protection_policy(self.dependant)
        if policy is None:
            return route_handler

        async def protected_route_handler(request: Request) -> Response:
            pipeline = get_protection_pipeline(request)
            decision = pipeline.protect(request, policy)
            if decision.early_response is not None:
                return decision.early_response
            request.state.protection_decision = decision
            response = await route_handler(request)
            return pipeline.attach_rate_limit_headers(response, decision)

        return protected_route_handler


def validate_route_policies(app: FastAPI) -> None:
    """Check every declared policy against the app's endpoint-class catalog.

    Raises:
        ValidationAppError: If a route names an unknown endpoint class.
    """
    pipeline: ProtectionPipeline = app.state.protection.pipeline
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        policy = route_protection_policy(route.dependant)
        if policy is not None:
            pipeline.check_policy(policy)


__all__ = [
    "ProtectedRoute",
    "ProtectionRejected",
    "RateLimitConfig",
    "get_protection_pipeline",
    "require_protection",
    "route_protection_policy",
    "validate_route_policies",
]
