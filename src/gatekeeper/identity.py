"""Client identity resolution.

The resolved address comes from headers any client can forge, so it is only
good enough for bucketing rate limits and for logs, never for authentication.
"""

from collections.abc import Iterable

LOOPBACK = "127.0.0.1"

# Checked in order; the forwarded-for header may hold a comma-separated chain.
FORWARDED_FOR = "x-forwarded-for"
REAL_IP = "x-real-ip"
CDN_CONNECTING_IP = "cf-connecting-ip"


def resolve_client_ip(headers: Iterable[tuple[str, str]]) -> str:
    """Pick the client address from proxy headers, falling back to loopback."""
    found: dict[str, str] = {}
    for name, value in headers:
        key = name.lower()
        if key in (FORWARDED_FOR, REAL_IP, CDN_CONNECTING_IP) and key not in found:
            found[key] = value

    forwarded = found.get(FORWARDED_FOR, "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    for key in (REAL_IP, CDN_CONNECTING_IP):
        value = found.get(key, "").strip()
        if value:
            return value

    return LOOPBACK
