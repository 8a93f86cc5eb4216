"""End-to-end tests: protected routes served by the real application."""

from __future__ import annotations

from fastapi.testclient import TestClient

from reqguard.core.middleware import SECURITY_HEADERS
from reqguard.core.state import ProtectionState
from tests.helpers import FakeClock


def _token_for(client: TestClient, session_id: str) -> str:
    resp = client.get("/v1/csrf-token", headers={"X-Session-ID": session_id})
    assert resp.status_code == 200
    return resp.json()["token"]


class TestRateLimitBurst:
    def test_five_allowed_then_429(self, client: TestClient) -> None:
        token = _token_for(client, "s1")
        headers = {"X-Session-ID": "s1", "X-CSRF-Token": token}

        remaining = []
        for _ in range(5):
            resp = client.post("/v1/items", headers=headers)
            assert resp.status_code == 200
            assert resp.json() == {"ok": True}
            assert resp.headers["X-RateLimit-Limit"] == "5"
            assert resp.headers["X-RateLimit-Window"] == "1000"
            remaining.append(resp.headers["X-RateLimit-Remaining"])

        assert remaining == ["4", "3", "2", "1", "0"]

        blocked = client.post("/v1/items", headers=headers)

        assert blocked.status_code == 429
        assert blocked.json() == {
            "error": "Rate limit exceeded",
            "message": "Slow down.",
            "retryAfter": 1,
        }
        assert int(blocked.headers["Retry-After"]) >= 1
        assert blocked.headers["X-RateLimit-Limit"] == "5"
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert blocked.headers["X-RateLimit-Reset"].endswith("Z")
        assert blocked.headers["X-RateLimit-Window"] == "1000"

    def test_new_window_after_reset(self, client: TestClient, clock: FakeClock) -> None:
        for _ in range(5):
            client.get("/v1/items")
        assert client.get("/v1/items").status_code == 429

        clock.advance(1.0)
        resp = client.get("/v1/items")

        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Remaining"] == "4"

    def test_csrf_rejections_still_consume_quota(self, client: TestClient) -> None:
        for _ in range(5):
            assert client.post("/v1/items").status_code == 403

        assert client.post("/v1/items").status_code == 429


class TestCSRFEnforcement:
    def test_safe_method_passes_without_token(self, client: TestClient) -> None:
        resp = client.get("/v1/items")

        assert resp.status_code == 200
        assert "X-RateLimit-Remaining" in resp.headers

    def test_unsafe_methods_without_token_are_forbidden(self, client: TestClient) -> None:
        for method in ("post", "put", "patch", "delete"):
            resp = getattr(client, method)("/v1/items")
            assert resp.status_code == 403
            assert resp.json() == {"error": "CSRF token missing"}

    def test_token_is_bound_to_its_session(self, client: TestClient) -> None:
        token = _token_for(client, "s1")

        ok = client.post("/v1/items", headers={"X-Session-ID": "s1", "X-CSRF-Token": token})
        wrong = client.post("/v1/items", headers={"X-Session-ID": "s2", "X-CSRF-Token": token})

        assert ok.status_code == 200
        assert wrong.status_code == 403
        assert wrong.json() == {"error": "Invalid CSRF token"}

    def test_cookie_session_and_alternate_token_header(self, client: TestClient) -> None:
        issued = client.get("/v1/csrf-token", headers={"Cookie": "csrf-session-id=cookie-session"})
        assert issued.json()["sessionId"] == "cookie-session"

        resp = client.put(
            "/v1/items",
            headers={"Cookie": "csrf-session-id=cookie-session", "csrf-token": issued.json()["token"]},
        )

        assert resp.status_code == 200


class TestCSRFTokenRoute:
    def test_issue_is_idempotent_per_session(self, client: TestClient, protection_state: ProtectionState) -> None:
        first = client.get("/v1/csrf-token", headers={"X-Session-ID": "abc"})
        second = client.get("/v1/csrf-token", headers={"X-Session-ID": "abc"})

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()
        assert first.json()["sessionId"] == "abc"
        assert len(first.json()["token"]) == 64
        assert len(protection_state.csrf_store) == 1
        assert first.headers["X-RateLimit-Limit"] == "100"

    def test_anonymous_session_when_none_presented(self, client: TestClient) -> None:
        resp = client.get("/v1/csrf-token")

        assert resp.json()["sessionId"] == "anonymous"

    def test_revoke_invalidates_token(self, client: TestClient) -> None:
        token = _token_for(client, "s1")
        headers = {"X-Session-ID": "s1", "X-CSRF-Token": token}

        revoked = client.delete("/v1/csrf-token", headers=headers)
        after = client.post("/v1/items", headers=headers)

        assert revoked.status_code == 200
        assert revoked.json() == {"revoked": True}
        assert revoked.headers["X-RateLimit-Limit"] == "5"
        assert after.status_code == 403
        assert after.json() == {"error": "Invalid CSRF token"}

    def test_revoke_requires_token(self, client: TestClient) -> None:
        resp = client.delete("/v1/csrf-token", headers={"X-Session-ID": "s1"})

        assert resp.status_code == 403
        assert resp.json() == {"error": "CSRF token missing"}


class TestHealthAndHeaders:
    def test_health_reports_store_sizes(self, client: TestClient) -> None:
        _token_for(client, "s1")

        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["csrf_tokens"] == 1
        assert body["rate_limit_keys"] == 2
        assert resp.headers["X-RateLimit-Limit"] == "1000"
        assert resp.headers["X-RateLimit-Window"] == "60000"

    def test_security_headers_coexist_with_rate_limit_headers(self, client: TestClient) -> None:
        for _ in range(5):
            client.get("/v1/items")
        blocked = client.get("/v1/items")

        assert blocked.status_code == 429
        for name, value in SECURITY_HEADERS.items():
            assert blocked.headers[name] == value
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert "Retry-After" in blocked.headers
        assert "Strict-Transport-Security" not in blocked.headers

    def test_rejections_carry_request_id(self, client: TestClient) -> None:
        resp = client.post("/v1/items", headers={"X-Request-ID": "req-42"})

        assert resp.status_code == 403
        assert resp.headers["X-Request-ID"] == "req-42"


def test_sweeper_runs_for_the_lifespan_of_the_app(app, protection_state: ProtectionState) -> None:
    assert not protection_state.sweeper.running

    with TestClient(app):
        assert protection_state.sweeper.running

    assert not protection_state.sweeper.running


def test_openapi_documents_csrf_and_rate_limit_responses(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    post_items = schema["paths"]["/v1/items"]["post"]
    get_items = schema["paths"]["/v1/items"]["get"]

    assert schema["components"]["securitySchemes"]["CSRFToken"]["name"] == "X-CSRF-Token"
    assert post_items["security"] == [{"CSRFToken": []}]
    assert {"403", "413", "429"} <= set(post_items["responses"])
    assert get_items["security"] == []
    assert "403" not in get_items["responses"]
    assert "PayloadTooLargeResponse" in schema["components"]["schemas"]
