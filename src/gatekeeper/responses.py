"""Outbound response composition."""

import secrets
from collections.abc import Mapping, MutableMapping
from datetime import datetime, timezone

from fastapi.responses import JSONResponse

from gatekeeper.models import Decision, ErrorBody, RateLimitResult, Verdict


def generate_request_id(now: float) -> str:
    """Millisecond timestamp plus a random suffix, e.g. ``1700000000000-k3j9x0q2m1ab``."""
    return f"{int(now * 1000)}-{secrets.token_hex(6)}"


def isoformat(timestamp: float) -> str:
    """Render epoch seconds as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": isoformat(result.reset_at),
    }


def diagnostic_headers(
    request_id: str, elapsed_seconds: float, production: bool
) -> dict[str, str]:
    """Headers every response touched by the gate carries."""
    headers = {"X-Request-ID": request_id}
    if not production:
        headers["X-Response-Time"] = f"{int(elapsed_seconds * 1000)}ms"
    return headers


def error_body(decision: Decision, request_id: str, now: float) -> ErrorBody:
    """The uniform denial body. The specific trigger is never included."""
    body = ErrorBody(
        error=decision.error or "Bad Request",
        timestamp=isoformat(now),
        requestId=request_id,
    )
    if decision.verdict == Verdict.THROTTLE:
        body.message = "Rate limit exceeded"
        body.retry_after = decision.retry_after
    return body


def build_denial_response(
    decision: Decision,
    request_id: str,
    now: float,
    elapsed_seconds: float,
    production: bool,
) -> JSONResponse:
    """Short-circuit response for a refused or throttled request."""
    headers = diagnostic_headers(request_id, elapsed_seconds, production)
    if decision.verdict == Verdict.THROTTLE and decision.rate_limit is not None:
        headers["Retry-After"] = str(decision.retry_after)
        headers.update(rate_limit_headers(decision.rate_limit))

    return JSONResponse(
        status_code=decision.status_code,
        content=error_body(decision, request_id, now).to_json(),
        headers=headers,
    )


def decorate_admitted(
    headers: MutableMapping[str, str],
    decision: Decision,
    request_id: str,
    elapsed_seconds: float,
    production: bool,
    security_headers: Mapping[str, str],
) -> None:
    """Add correlation, rate-limit and security headers to a passed-through response."""
    for name, value in security_headers.items():
        headers[name] = value
    if decision.rate_limit is not None:
        headers.update(rate_limit_headers(decision.rate_limit))
    headers.update(diagnostic_headers(request_id, elapsed_seconds, production))
