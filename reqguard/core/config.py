"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class RateLimitConfig(BaseModel):
    """Limit/window pair for one endpoint class.

    Immutable once the process has loaded its configuration.
    """

    model_config = ConfigDict(frozen=True)

    limit: int = Field(..., gt=0, description="Requests allowed per window")
    window_ms: int = Field(..., gt=0, description="Window length in milliseconds")
    message: str = Field(
        "Too many requests. Please try again later.",
        description="Human-readable message returned with 429 responses",
    )


def _default_rate_limit_classes() -> dict[str, RateLimitConfig]:
    return {
        "auth": RateLimitConfig(
            limit=5,
            window_ms=15 * 60 * 1000,
            message="Too many authentication attempts. Please try again later.",
        ),
        "api": RateLimitConfig(
            limit=100,
            window_ms=15 * 60 * 1000,
            message="Too many requests. Please try again later.",
        ),
        "health": RateLimitConfig(
            limit=1000,
            window_ms=60 * 1000,
            message="Health check rate limit exceeded.",
        ),
        "upload": RateLimitConfig(
            limit=10,
            window_ms=60 * 1000,
            message="Too many upload attempts. Please try again later.",
        ),
    }


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_csrf_settings() -> "CSRFSettings":
    return CSRFSettings()  # type: ignore[call-arg]


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' (structured) or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file at this size (0 disables rotation)",
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    security_headers_enabled: bool = Field(
        True,
        description="Attach CSP/HSTS/frame security headers to every response",
    )
    host: str = Field(
        "127.0.0.1",
        description="Interface the server binds to",
    )
    port: int = Field(
        8000,
        description="Port the server listens on",
    )
    max_body_bytes: int = Field(
        10 * 1024 * 1024,
        ge=0,
        description="Largest declared request body accepted on protected routes (0 disables the cap)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-client fixed-window rate limiting."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting for protected routes",
    )
    fail_open: bool = Field(
        True,
        description="Let requests through (and log) when the limiter store fails",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on allowed responses",
    )
    trust_proxy_headers: bool = Field(
        True,
        description=(
            "Resolve the client address from X-Forwarded-For/X-Real-IP/X-Client-IP. "
            "Only safe behind a reverse proxy that overwrites these headers."
        ),
    )
    classes: dict[str, RateLimitConfig] = Field(
        default_factory=_default_rate_limit_classes,
        description="Endpoint-class catalog (JSON object of name -> {limit, window_ms, message})",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CSRFSettings(BaseSettings):
    """Session-bound CSRF token lifecycle."""

    enabled: bool = Field(
        True,
        description="Enforce CSRF tokens on POST/PUT/PATCH/DELETE",
    )
    token_ttl_seconds: int = Field(
        24 * 60 * 60,
        description="Lifetime of an issued token",
        ge=1,
    )
    token_bytes: int = Field(
        32,
        description="Random bytes per token (hex encoded, so tokens are twice as long)",
        ge=16,
    )
    sweep_interval_seconds: float = Field(
        60 * 60,
        description="Interval of the background sweep that evicts expired entries",
        gt=0,
    )
    session_cookie_names: list[str] = Field(
        default_factory=lambda: ["csrf-session-id", "sessionId"],
        description="Cookies holding the session id, in priority order",
    )
    session_header: str = Field(
        "X-Session-ID",
        description="Header holding the session id when no cookie is present",
    )
    token_headers: list[str] = Field(
        default_factory=lambda: ["X-CSRF-Token", "CSRF-Token"],
        description="Headers carrying the CSRF token, in priority order",
    )
    anonymous_session_id: str = Field(
        "anonymous",
        description="Session id used when the request carries none",
    )

    model_config = SettingsConfigDict(
        env_prefix="CSRF_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    csrf: CSRFSettings = Field(default_factory=_build_csrf_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
