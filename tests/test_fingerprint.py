"""Tests for client fingerprinting."""

from reqguard.core.fingerprint import fingerprint, resolve_client_address
from tests.helpers import make_request


def test_forwarded_for_first_hop_wins() -> None:
    request = make_request(
        headers={
            "X-Forwarded-For": " 203.0.113.9 , 10.0.0.1",
            "X-Real-IP": "198.51.100.1",
            "User-Agent": "curl/8.4.0",
        }
    )

    assert fingerprint(request) == "203.0.113.9:curl/8.4.0"


def test_falls_back_through_real_ip_and_client_ip() -> None:
    assert resolve_client_address(make_request(headers={"X-Real-IP": "198.51.100.1"})) == "198.51.100.1"
    assert resolve_client_address(make_request(headers={"X-Client-IP": "192.0.2.44"})) == "192.0.2.44"


def test_empty_forwarded_for_is_skipped() -> None:
    request = make_request(headers={"X-Forwarded-For": " , ", "X-Real-IP": "198.51.100.1"})

    assert resolve_client_address(request) == "198.51.100.1"


def test_no_headers_degrades_to_unknown() -> None:
    assert fingerprint(make_request()) == "unknown:unknown"


def test_user_agent_is_truncated_to_50_chars() -> None:
    user_agent = "Mozilla/5.0 " + "x" * 200
    request = make_request(headers={"X-Real-IP": "192.0.2.1", "User-Agent": user_agent})

    key = fingerprint(request)

    assert key == f"192.0.2.1:{user_agent[:50]}"


def test_untrusted_proxy_headers_use_socket_peer() -> None:
    request = make_request(
        headers={"X-Forwarded-For": "203.0.113.9", "User-Agent": "ua"},
        client=("198.51.100.20", 50000),
    )

    assert fingerprint(request, trust_proxy_headers=False) == "198.51.100.20:ua"


def test_untrusted_without_peer_is_unknown() -> None:
    request = make_request(client=None)

    assert fingerprint(request, trust_proxy_headers=False) == "unknown:unknown"
