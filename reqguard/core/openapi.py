"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- a CSRF token security scheme (header ``X-CSRF-Token``) required on every
  unsafe operation, with safe operations left open
- documented 429/403/413 responses for protected operations
- tags metadata

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from reqguard.core.protection import UNSAFE_METHODS
from reqguard.schemas.protection import CSRFErrorResponse, PayloadTooLargeResponse, RateLimitErrorResponse

_RATE_LIMIT_RESPONSE = {
    "description": "Rate limit exceeded. Honour the Retry-After header.",
    "content": {
        "application/json": {
            "schema": {"$ref": "#/components/schemas/RateLimitErrorResponse"},
        }
    },
}

_CSRF_RESPONSE = {
    "description": "CSRF token missing or invalid.",
    "content": {
        "application/json": {
            "schema": {"$ref": "#/components/schemas/CSRFErrorResponse"},
        }
    },
}

_PAYLOAD_TOO_LARGE_RESPONSE = {
    "description": "Declared request body exceeds the size limit.",
    "content": {
        "application/json": {
            "schema": {"$ref": "#/components/schemas/PayloadTooLargeResponse"},
        }
    },
}


def _error_schemas() -> Dict[str, Any]:
    return {
        "RateLimitErrorResponse": RateLimitErrorResponse.model_json_schema(by_alias=True),
        "CSRFErrorResponse": CSRFErrorResponse.model_json_schema(),
        "PayloadTooLargeResponse": PayloadTooLargeResponse.model_json_schema(by_alias=True),
    }


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document the protection layer."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "CSRFToken",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-CSRF-Token",
                "description": "Token from GET /v1/csrf-token, bound to the caller's session.",
            },
        )
        component_schemas = components.setdefault("schemas", {})
        for name, body in _error_schemas().items():
            component_schemas.setdefault(name, body)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Security",
                "description": "CSRF token issuance and revocation.",
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method, operation in methods.items():
                if not isinstance(operation, dict):
                    continue
                responses = operation.setdefault("responses", {})
                responses.setdefault("429", _RATE_LIMIT_RESPONSE)
                if method.upper() in UNSAFE_METHODS:
                    operation["security"] = [{"CSRFToken": []}]
                    responses.setdefault("403", _CSRF_RESPONSE)
                    responses.setdefault("413", _PAYLOAD_TOO_LARGE_RESPONSE)
                else:
                    operation["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
