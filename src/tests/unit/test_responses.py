"""Unit tests for response composition."""

import json

from starlette.datastructures import MutableHeaders

from gatekeeper.models import Decision, DenyReason, RateLimitResult
from gatekeeper.responses import (
    build_denial_response,
    decorate_admitted,
    diagnostic_headers,
    generate_request_id,
    isoformat,
    rate_limit_headers,
)

NOW = 1_700_000_000.0
RESULT = RateLimitResult(allowed=True, count=1, reset_at=NOW + 900, limit=100)


class TestHelpers:
    """Tests for header helpers."""

    def test_request_id_is_unique(self):
        first = generate_request_id(NOW)
        second = generate_request_id(NOW)
        assert first != second
        assert first.startswith("1700000000000-")

    def test_isoformat(self):
        assert isoformat(NOW) == "2023-11-14T22:13:20.000Z"

    def test_rate_limit_headers(self):
        headers = rate_limit_headers(RESULT)
        assert headers == {
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "99",
            "X-RateLimit-Reset": "2023-11-14T22:28:20.000Z",
        }

    def test_response_time_outside_production(self):
        headers = diagnostic_headers("rid", 0.012, production=False)
        assert headers == {"X-Request-ID": "rid", "X-Response-Time": "12ms"}

    def test_no_response_time_in_production(self):
        assert diagnostic_headers("rid", 0.012, production=True) == {"X-Request-ID": "rid"}


class TestDenialResponse:
    """Tests for build_denial_response."""

    def test_deny_body_is_uniform(self):
        decision = Decision.deny(400, "Bad Request", DenyReason.SQL_INJECTION)

        response = build_denial_response(decision, "rid-1", NOW, 0.001, production=True)
        body = json.loads(response.body)

        assert response.status_code == 400
        assert body == {"error": "Bad Request", "timestamp": "2023-11-14T22:13:20.000Z", "requestId": "rid-1"}
        assert "SQL" not in response.body.decode()
        assert response.headers["X-Request-ID"] == "rid-1"
        assert "Retry-After" not in response.headers

    def test_throttle_response(self):
        limited = RateLimitResult(allowed=False, count=100, reset_at=NOW + 840, limit=100)
        decision = Decision.throttle(limited, retry_after=840)

        response = build_denial_response(decision, "rid-2", NOW, 0.001, production=False)
        body = json.loads(response.body)

        assert response.status_code == 429
        assert body["retryAfter"] == 840
        assert body["message"] == "Rate limit exceeded"
        assert body["requestId"] == "rid-2"
        assert response.headers["Retry-After"] == "840"
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "2023-11-14T22:27:20.000Z"
        assert "X-Response-Time" in response.headers


class TestDecorateAdmitted:
    """Tests for decorate_admitted."""

    def test_adds_all_headers(self):
        headers = MutableHeaders()
        decorate_admitted(
            headers,
            Decision.admit(RESULT),
            "rid-3",
            0.002,
            production=False,
            security_headers={"X-Frame-Options": "DENY"},
        )

        assert headers["X-Request-ID"] == "rid-3"
        assert headers["X-Frame-Options"] == "DENY"
        assert headers["X-RateLimit-Remaining"] == "99"
        assert headers["X-Response-Time"] == "2ms"

    def test_without_rate_limit(self):
        headers = MutableHeaders()
        decorate_admitted(headers, Decision.admit(), "rid-4", 0.0, production=True, security_headers={})

        assert headers["X-Request-ID"] == "rid-4"
        assert "X-RateLimit-Limit" not in headers
        assert "X-Response-Time" not in headers
