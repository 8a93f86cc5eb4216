"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from reqguard.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    hash_for_log,
    set_request_id,
)


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_tokens_and_sessions():
    logger, stream = _capture("test_redaction")

    logger.info(
        "csrf_event",
        extra={
            "csrf_token": "a" * 64,
            "session_id": "user-session-1",
            "cookie": "sessionId=user-session-1",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "a" * 64 not in output
    assert "user-session-1" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_nested_headers():
    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "X-CSRF-Token": "secret-token",
                "X-Session-ID": "secret-session",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()

    assert "secret-token" not in output
    assert "secret-session" not in output
    assert "pytest" in output


def test_sensitive_filter_allows_safe_fields():
    logger, stream = _capture("test_safe_fields")

    logger.info(
        "rate_limit.exceeded",
        extra={
            "rate_limit_class": "auth",
            "key_hash": hash_for_log("203.0.113.9:curl"),
            "retry_after_s": 42,
        },
    )

    record = json.loads(stream.getvalue())

    assert record["message"] == "rate_limit.exceeded"
    assert record["rate_limit_class"] == "auth"
    assert record["retry_after_s"] == 42
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context_is_attached():
    logger, stream = _capture("test_request_id")

    set_request_id("req-123")
    try:
        logger.info("with_context")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_hash_for_log_is_stable_and_opaque():
    digest = hash_for_log("198.51.100.7:Mozilla")

    assert digest == hash_for_log("198.51.100.7:Mozilla")
    assert digest != hash_for_log("198.51.100.8:Mozilla")
    assert len(digest) == 16
    assert "198.51.100.7" not in digest
    assert len(hash_for_log("x", length=8)) == 8
