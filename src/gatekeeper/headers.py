"""Inbound header validation."""

from collections.abc import Iterable

from gatekeeper.models import DenyReason, HeaderValidation

DEFAULT_MAX_HEADER_BYTES = 8192
DEFAULT_API_PREFIX = "/api/"

_VALID = HeaderValidation(valid=True)


def validate_headers(
    headers: Iterable[tuple[str, str]],
    path: str,
    max_bytes: int = DEFAULT_MAX_HEADER_BYTES,
    api_prefix: str = DEFAULT_API_PREFIX,
) -> HeaderValidation:
    """
    Check aggregate header size and per-header content.

    Checks run fail-fast in this order:
    1. total name + value length over all headers must not exceed ``max_bytes``
    2. no value may contain a raw CR or LF (header injection)
    3. a ``text/html`` content type is only accepted under ``api_prefix``
    """
    pairs = list(headers)

    total = sum(len(name) + len(value) for name, value in pairs)
    if total > max_bytes:
        return HeaderValidation(valid=False, reason=DenyReason.HEADERS_TOO_LARGE)

    for name, value in pairs:
        if "\n" in value or "\r" in value:
            return HeaderValidation(valid=False, reason=DenyReason.HEADER_INJECTION)

        if name.lower() == "content-type" and "text/html" in value.lower():
            if not path.startswith(api_prefix):
                return HeaderValidation(valid=False, reason=DenyReason.SUSPICIOUS_CONTENT_TYPE)

    return _VALID
