from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from reqguard.core.dependencies import ProtectedRoute, require_protection
from reqguard.core.state import get_protection_state
from reqguard.schemas.protection import HealthResponse

router = APIRouter(tags=["Health"], route_class=ProtectedRoute)


@router.get(
    "/health",
    response_model=HealthResponse,
    dependencies=[Depends(require_protection("health"))],
)
def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Reports liveness plus the size of both in-memory stores. Used by load
    balancers and monitoring systems; rate limited with the ``health`` class.
    """

    state = get_protection_state(request)
    return HealthResponse(
        status="ok",
        csrf_tokens=len(state.csrf_store),
        rate_limit_keys=len(state.rate_limit_store),
    )
