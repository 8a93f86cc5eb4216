"""Tests for global exception handlers.

Validates that protection rejections pass through untouched and that
application errors map to the right HTTP status without leaking internals.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from reqguard.core.dependencies import ProtectionRejected
from reqguard.core.errors import (
    AppError,
    StoreInternalError,
    ValidationAppError,
)
from reqguard.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


def _raise_on(app: FastAPI, path: str, exc: Exception) -> None:
    async def endpoint():
        raise exc

    app.add_api_route(path, endpoint, methods=["GET"])


class TestProtectionRejectedHandler:
    def test_early_response_is_returned_verbatim(self, client: TestClient, app_with_handlers: FastAPI):
        rejection = JSONResponse(
            status_code=429,
            content={"error": "Rate limit exceeded", "message": "Slow down.", "retryAfter": 7},
            headers={"Retry-After": "7", "X-RateLimit-Remaining": "0"},
        )
        _raise_on(app_with_handlers, "/limited", ProtectionRejected(rejection))

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded", "message": "Slow down.", "retryAfter": 7}
        assert response.headers["Retry-After"] == "7"
        assert response.headers["X-RateLimit-Remaining"] == "0"


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        "exc, status_code",
        [
            (ValidationAppError(code="unknown_rate_limit_class", message="Unknown class"), 400),
            (StoreInternalError(code="store_unavailable", message="Store down"), 500),
        ],
    )
    def test_status_mapping(self, client: TestClient, app_with_handlers: FastAPI, exc: AppError, status_code: int):
        _raise_on(app_with_handlers, "/fail", exc)

        response = client.get("/fail")

        assert response.status_code == status_code
        data = response.json()
        assert data["error"]["code"] == exc.code
        assert data["error"]["message"] == exc.message
        assert "request_id" in data["error"]
        assert "details" not in data["error"]

    def test_validation_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        _raise_on(
            app_with_handlers,
            "/invalid",
            ValidationAppError(
                code="unknown_rate_limit_class",
                message="Unknown rate limit class: 'nope'",
                details={"hint": "Known classes: api, auth"},
            ),
        )

        response = client.get("/invalid")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"hint": "Known classes: api, auth"}


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_hides_internals(self):
        request = AsyncMock()
        request.url.path = "/v1/items"
        request.method = "POST"

        exc = RuntimeError("token table corrupted at slot 7")
        response = asyncio.run(general_exception_handler(request, exc))

        text = bytes(response.body).decode()
        data = json.loads(text)
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "slot 7" not in text
        assert "RuntimeError" not in text
        assert "Traceback" not in text


class TestErrorHandlerIntegration:
    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert ProtectionRejected in app_with_handlers.exception_handlers
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
