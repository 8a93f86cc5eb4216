"""HTTP middleware: request correlation and security response headers.

Both run outside the route, i.e. after the protection pipeline has decided
and decorated the response. The security header middleware only writes its
own header names, so ``X-RateLimit-*`` and ``Retry-After`` set by the
pipeline are never overwritten.

Usage:
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from reqguard.core.config import settings
from reqguard.core.logging import clear_request_id, set_request_id

# API responses never render HTML, so the policy can be maximally strict.
SECURITY_HEADERS: dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=(), usb=()",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-Permitted-Cross-Domain-Policies": "none",
}

HSTS_HEADER = ("Strict-Transport-Security", "max-age=31536000; includeSubDomains")


def security_headers(app_env: str) -> dict[str, str]:
    """Return the security headers for ``app_env``; HSTS only in production."""
    headers = dict(SECURITY_HEADERS)
    if app_env == "production":
        name, value = HSTS_HEADER
        headers[name] = value
    return headers


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate (or mint) a request id and report the request duration.

    If the client provides the configured request id header, that value is
    reused; otherwise a UUID4 is generated. The id is stored in contextvars
    for log correlation and echoed back with ``X-Request-Duration-ms``.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Layer CSP/HSTS/frame headers onto every outgoing response."""

    response: Response = await call_next(request)
    if not settings.app.security_headers_enabled:
        return response

    for name, value in security_headers(settings.app_env).items():
        response.headers[name] = value
    return response
