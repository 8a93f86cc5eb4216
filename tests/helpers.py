"""Test helpers shared by unit and end-to-end tests."""

from typing import Iterable

from fastapi import Depends, FastAPI, Request

from reqguard.core.config import RateLimitConfig
from reqguard.core.dependencies import require_protection


class FakeClock:
    """Deterministic, manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def make_request(
    method: str = "POST",
    *,
    headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
    client: tuple[str, int] | None = ("198.51.100.20", 50000),
    path: str = "/v1/items",
) -> Request:
    """Build a Starlette request from a raw ASGI scope."""
    raw_headers: list[tuple[bytes, bytes]] = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode("latin-1")))

    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "root_path": "",
        "query_string": b"",
        "headers": raw_headers,
        "client": client,
    }
    return Request(scope)


E2E_LIMIT = RateLimitConfig(limit=5, window_ms=1000, message="Slow down.")


def add_item_routes(app: FastAPI, methods: Iterable[str] = ("GET", "POST")) -> None:
    """Register a stand-in domain handler protected by ``E2E_LIMIT`` and CSRF."""

    async def items_handler() -> dict:
        return {"ok": True}

    app.add_api_route(
        "/v1/items",
        items_handler,
        methods=list(methods),
        dependencies=[Depends(require_protection(E2E_LIMIT))],
    )
