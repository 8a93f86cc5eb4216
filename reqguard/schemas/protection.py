"""Pydantic schemas for the protection layer's HTTP surface."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CSRFTokenResponse(BaseModel):
    """Token issued for the caller's session."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., description="CSRF token to send back in the X-CSRF-Token header.")
    session_id: str = Field(
        ...,
        alias="sessionId",
        description="Session id the token is bound to (cookie, X-Session-ID header, or 'anonymous').",
    )


class CSRFRevokeResponse(BaseModel):
    revoked: bool = Field(True, description="Always true; revoking an absent token is a no-op.")


class RateLimitErrorResponse(BaseModel):
    """Body of a 429 response."""

    error: str = Field("Rate limit exceeded")
    message: str = Field(..., description="Endpoint-class specific explanation.")
    retry_after: int = Field(
        ...,
        alias="retryAfter",
        description="Seconds until the window resets (also sent as Retry-After).",
    )


class CSRFErrorResponse(BaseModel):
    """Body of a 403 CSRF rejection."""

    error: str = Field(..., description="'CSRF token missing' or 'Invalid CSRF token'.")


class HealthResponse(BaseModel):
    status: str = Field("ok")
    csrf_tokens: int = Field(..., description="Tokens currently held by the CSRF store.")
    rate_limit_keys: int = Field(..., description="Client windows tracked by the rate limit store.")


class PayloadTooLargeResponse(BaseModel):
    """Body of a 413 response."""

    error: str = Field("Request body too large")
    message: str = Field(..., description="States the byte limit that was exceeded.")
    max_bytes: int = Field(..., alias="maxBytes", description="Largest accepted Content-Length.")
