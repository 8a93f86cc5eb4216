"""Client fingerprinting for rate limit keys.

The fingerprint is a coarse abuse deterrent, not an identity. Forwarded
address headers are only meaningful behind a reverse proxy that overwrites
them; anything else lets a client pick its own key. Deployments without
such a proxy should set ``RATE_LIMIT_TRUST_PROXY_HEADERS=false`` so the
socket peer address is used instead.
"""

from __future__ import annotations

from starlette.requests import HTTPConnection

UNKNOWN = "unknown"
USER_AGENT_PREFIX_CHARS = 50

# Checked in order; the first non-empty value wins
_ADDRESS_HEADERS = ("x-forwarded-for", "x-real-ip", "x-client-ip")


def resolve_client_address(request: HTTPConnection, *, trust_proxy_headers: bool = True) -> str:
    """Resolve the presumed client address of ``request``.

    Args:
        request: Incoming request (or any Starlette connection).
        trust_proxy_headers: Read X-Forwarded-For / X-Real-IP / X-Client-IP.

    Returns:
        Address string, or ``"unknown"`` when nothing usable is present.
    """
    if not trust_proxy_headers:
        return request.client.host if request.client and request.client.host else UNKNOWN

    for header in _ADDRESS_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        # X-Forwarded-For is "client, proxy1, proxy2"
        address = value.split(",")[0].strip()
        if address:
            return address
    return UNKNOWN


def fingerprint(request: HTTPConnection, *, trust_proxy_headers: bool = True) -> str:
    """Build the ``"<address>:<user-agent prefix>"`` key for ``request``.

    Never raises; degrades to ``"unknown:unknown"`` without headers.
    """
    address = resolve_client_address(request, trust_proxy_headers=trust_proxy_headers)
    user_agent = request.headers.get("user-agent") or UNKNOWN
    return f"{address}:{user_agent[:USER_AGENT_PREFIX_CHARS]}"
