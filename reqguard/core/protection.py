"""Request-protection pipeline: rate limiting, CSRF, then request size.

The order is fixed and callers cannot change it:

1. Rate limit (when the route names an endpoint class). Rejected → 429.
2. CSRF (POST/PUT/PATCH/DELETE unless the route opts out). Rejected → 403.
3. Declared body size (``Content-Length``) against the byte cap. → 413.
4. Otherwise no early response; the caller runs the domain handler and
   attaches the rate-limit headers computed in step 1 to its response.

Every attempt that reaches step 1 is charged, even if a later step bounces
it, so clients failing CSRF still consume their quota.

The pipeline never raises. Store failures and misconfigured classes are
turned into responses too: rate limiting fails open (configurable), CSRF
always fails closed, an unknown endpoint class fails closed with a 500.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from reqguard.adapters.csrf.base import AbstractCSRFTokenStore
from reqguard.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from reqguard.core.config import CSRFSettings, RateLimitConfig, RateLimitSettings
from reqguard.core.errors import StoreInternalError, ValidationAppError
from reqguard.core.fingerprint import fingerprint
from reqguard.core.logging import hash_for_log

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

RATE_LIMIT_EXCEEDED = "Rate limit exceeded"
CSRF_TOKEN_MISSING = "CSRF token missing"
CSRF_TOKEN_INVALID = "Invalid CSRF token"
PAYLOAD_TOO_LARGE = "Request body too large"
INVALID_CONTENT_LENGTH = "Invalid Content-Length"
RATE_LIMIT_MISCONFIGURED = "Rate limit misconfigured"

RateLimitSpec = str | RateLimitConfig


@dataclass(frozen=True)
class ProtectionPolicy:
    """What a route asks of the pipeline.

    Attributes:
        rate_limit: Endpoint class name from the catalog, an inline config,
            or None for no rate limiting.
        require_csrf: False opts an unsafe route out of CSRF; None and True
            both enforce it. Safe methods are never checked.
        max_body_bytes: Byte cap on the declared request body; None uses the
            application default, 0 lifts the cap for this route.
    """

    rate_limit: RateLimitSpec | None = None
    require_csrf: bool | None = None
    max_body_bytes: int | None = None


@dataclass
class ProtectionDecision:
    """Outcome of ``ProtectionPipeline.protect``.

    ``early_response`` is set when the request must not reach the handler.
    ``rate_limit_headers`` carries the telemetry headers for the eventual
    success response.
    """

    early_response: JSONResponse | None = None
    rate_limit_headers: dict[str, str] = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return self.early_response is None


def format_reset(reset_at: float) -> str:
    """Render an epoch timestamp as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(reset_at, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_headers(config: RateLimitConfig, result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(config.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": format_reset(result.reset_at),
        "X-RateLimit-Window": str(config.window_ms),
    }


class ProtectionPipeline:
    """Composes the rate limit store and the CSRF token store for one app."""

    def __init__(
        self,
        *,
        rate_limit_store: AbstractRateLimitStore,
        csrf_store: AbstractCSRFTokenStore,
        rate_limit_settings: RateLimitSettings,
        csrf_settings: CSRFSettings,
        max_body_bytes: int = 0,
    ) -> None:
        self.rate_limit_store = rate_limit_store
        self.csrf_store = csrf_store
        self._rate_limit_settings = rate_limit_settings
        self._csrf_settings = csrf_settings
        self._max_body_bytes = max_body_bytes

    # ------------------------------------------------------------------
    # Resolution helpers
    # ------------------------------------------------------------------

    def resolve_rate_limit(self, spec: RateLimitSpec) -> tuple[str, RateLimitConfig]:
        """Resolve a class name or inline config to ``(namespace, config)``.

        Raises:
            ValidationAppError: If ``spec`` names an unknown endpoint class.
        """
        if isinstance(spec, RateLimitConfig):
            return f"inline-{spec.limit}-{spec.window_ms}", spec

        config = self._rate_limit_settings.classes.get(spec)
        if config is None:
            raise ValidationAppError(
                code="unknown_rate_limit_class",
                message=f"Unknown rate limit class: '{spec}'",
                details={"hint": f"Known classes: {', '.join(sorted(self._rate_limit_settings.classes))}"},
            )
        return spec, config

    def resolve_session_id(self, request: Request) -> str:
        """Session id: CSRF session cookie, session cookie, session header, anonymous."""
        for cookie_name in self._csrf_settings.session_cookie_names:
            value = request.cookies.get(cookie_name)
            if value:
                return value
        return (
            request.headers.get(self._csrf_settings.session_header)
            or self._csrf_settings.anonymous_session_id
        )

    def resolve_csrf_token(self, request: Request) -> str | None:
        """Return the presented token; header lookups ignore name casing."""
        for header in self._csrf_settings.token_headers:
            value = request.headers.get(header)
            if value:
                return value
        return None

    def client_fingerprint(self, request: Request) -> str:
        return fingerprint(
            request,
            trust_proxy_headers=self._rate_limit_settings.trust_proxy_headers,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def protect(self, request: Request, policy: ProtectionPolicy) -> ProtectionDecision:
        """Run rate limiting, CSRF and the body size check for ``request``.

        Args:
            request: Incoming request; it is never modified.
            policy: Route-level protection requirements.

        Returns:
            ProtectionDecision with an early 429/403/413/500/503 response, or
            with the rate-limit headers to attach to the handler's response.
        """
        decision = ProtectionDecision()

        if policy.rate_limit is not None and self._rate_limit_settings.enabled:
            early = self._enforce_rate_limit(request, policy.rate_limit, decision)
            if early is not None:
                decision.early_response = early
                return decision

        if self._csrf_required(request, policy):
            early = self._enforce_csrf(request)
            if early is not None:
                decision.early_response = early
                return decision

        decision.early_response = self._enforce_body_size(request, policy)
        return decision

    def check_policy(self, policy: ProtectionPolicy) -> None:
        """Validate ``policy`` against this pipeline's catalog.

        Raises:
            ValidationAppError: If the policy names an unknown endpoint class.
        """
        if policy.rate_limit is not None:
            self.resolve_rate_limit(policy.rate_limit)

    def attach_rate_limit_headers(self, response: Response, decision: ProtectionDecision) -> Response:
        """Copy the telemetry headers of ``decision`` onto ``response``."""
        if self._rate_limit_settings.include_headers:
            for name, value in decision.rate_limit_headers.items():
                response.headers[name] = value
        return response

    async def handle(
        self,
        request: Request,
        handler: Callable[[], Awaitable[Response]],
        policy: ProtectionPolicy,
    ) -> Response:
        """Protect ``request``, run ``handler`` if allowed, decorate its response."""
        decision = self.protect(request, policy)
        if decision.early_response is not None:
            return decision.early_response
        response = await handler()
        return self.attach_rate_limit_headers(response, decision)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _enforce_rate_limit(
        self,
        request: Request,
        spec: RateLimitSpec,
        decision: ProtectionDecision,
    ) -> JSONResponse | None:
        try:
            namespace, config = self.resolve_rate_limit(spec)
        except ValidationAppError as exc:
            logger.error(
                "rate_limit.unknown_class",
                extra={"error_code": exc.code, "request_path": request.url.path},
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": RATE_LIMIT_MISCONFIGURED},
            )

        client_key = self.client_fingerprint(request)
        identifier = f"{namespace}:{client_key}"

        try:
            result = self.rate_limit_store.check(identifier, config.limit, config.window_ms)
        except StoreInternalError as exc:
            return self._rate_limit_store_failure(namespace, exc)

        headers = rate_limit_headers(config, result)
        log_extra = {
            "rate_limit_class": namespace,
            "key_hash": hash_for_log(client_key),
            "limit": config.limit,
            "remaining": result.remaining,
            "window_ms": config.window_ms,
        }

        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
            decision.rate_limit_headers = headers
            return None

        retry_after = result.retry_after_seconds or 1
        logger.warning(
            "rate_limit.exceeded",
            extra={
                **log_extra,
                "retry_after_s": retry_after,
                "request_path": request.url.path,
                "request_method": request.method,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": RATE_LIMIT_EXCEEDED,
                "message": config.message,
                "retryAfter": retry_after,
            },
            headers={**headers, "Retry-After": str(retry_after)},
        )

    def _rate_limit_store_failure(self, namespace: str, exc: StoreInternalError) -> JSONResponse | None:
        if self._rate_limit_settings.fail_open:
            logger.error(
                "rate_limit.store_failure",
                extra={"rate_limit_class": namespace, "error_code": exc.code, "policy": "fail_open"},
            )
            return None

        logger.error(
            "rate_limit.store_failure",
            extra={"rate_limit_class": namespace, "error_code": exc.code, "policy": "fail_closed"},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Rate limiting unavailable"},
            headers={"Retry-After": "1"},
        )

    def _csrf_required(self, request: Request, policy: ProtectionPolicy) -> bool:
        if not self._csrf_settings.enabled:
            return False
        if request.method.upper() not in UNSAFE_METHODS:
            return False
        return policy.require_csrf is not False

    def _enforce_csrf(self, request: Request) -> JSONResponse | None:
        session_id = self.resolve_session_id(request)
        token = self.resolve_csrf_token(request)
        log_extra = {
            "session_hash": hash_for_log(session_id),
            "request_path": request.url.path,
            "request_method": request.method,
        }

        if not token:
            logger.warning("csrf.token_missing", extra=log_extra)
            return _csrf_rejection(CSRF_TOKEN_MISSING)

        try:
            valid = self.csrf_store.validate(session_id, token)
        except StoreInternalError as exc:
            # Same response as a wrong token; callers must not learn about the store.
            logger.error("csrf.store_failure", extra={**log_extra, "error_code": exc.code})
            valid = False

        if not valid:
            logger.warning("csrf.token_invalid", extra=log_extra)
            return _csrf_rejection(CSRF_TOKEN_INVALID)

        return None

    def _enforce_body_size(self, request: Request, policy: ProtectionPolicy) -> JSONResponse | None:
        max_bytes = self._max_body_bytes if policy.max_body_bytes is None else policy.max_body_bytes
        declared = request.headers.get("content-length")
        if not max_bytes or declared is None:
            return None

        try:
            length = int(declared)
        except ValueError:
            length = -1
        if length < 0:
            logger.warning(
                "request.invalid_content_length",
                extra={"request_path": request.url.path, "request_method": request.method},
            )
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": INVALID_CONTENT_LENGTH},
            )

        if length <= max_bytes:
            return None

        logger.warning(
            "request.body_too_large",
            extra={
                "content_length": length,
                "max_body_bytes": max_bytes,
                "request_path": request.url.path,
                "request_method": request.method,
            },
        )
        return JSONResponse(
            status_code=413,
            content={
                "error": PAYLOAD_TOO_LARGE,
                "message": f"Request body exceeds maximum size of {max_bytes} bytes",
                "maxBytes": max_bytes,
            },
        )


def _csrf_rejection(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": message})
