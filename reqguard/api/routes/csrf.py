from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from reqguard.core.dependencies import ProtectedRoute, require_protection
from reqguard.core.logging import hash_for_log
from reqguard.core.state import get_protection_state
from reqguard.schemas.protection import CSRFRevokeResponse, CSRFTokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Security"], route_class=ProtectedRoute)


@router.get(
    "/csrf-token",
    response_model=CSRFTokenResponse,
    dependencies=[Depends(require_protection("api"))],
)
async def issue_csrf_token(request: Request) -> CSRFTokenResponse:
    """Issue (or re-issue) the CSRF token of the caller's session.

    The session is resolved exactly as the CSRF check resolves it, so the
    returned token validates on the next unsafe request from the same
    session. Calling this repeatedly within the token lifetime returns the
    same token.
    """
    state = get_protection_state(request)
    session_id = state.pipeline.resolve_session_id(request)
    token = state.csrf_store.generate(session_id)
    return CSRFTokenResponse(token=token, session_id=session_id)


@router.delete(
    "/csrf-token",
    response_model=CSRFRevokeResponse,
    dependencies=[Depends(require_protection("auth"))],
)
async def revoke_csrf_token(request: Request) -> CSRFRevokeResponse:
    """Revoke the caller's CSRF token (logout, password change).

    The request itself must carry the current token.
    """
    state = get_protection_state(request)
    session_id = state.pipeline.resolve_session_id(request)
    state.csrf_store.remove(session_id)
    logger.info("csrf.token_revoked", extra={"session_hash": hash_for_log(session_id)})
    return CSRFRevokeResponse(revoked=True)
