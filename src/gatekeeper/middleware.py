"""ASGI middleware that puts the security gate in front of an application."""

import time
from collections.abc import Awaitable, Callable, Iterable, Mapping

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from gatekeeper.clock import Clock, SystemClock
from gatekeeper.config import Settings, get_settings
from gatekeeper.gate import SecurityGate
from gatekeeper.logging import bind_request_context, clear_request_context
from gatekeeper.models import GuardRequest
from gatekeeper.responses import build_denial_response, decorate_admitted, generate_request_id

logger = structlog.get_logger()


class RouteMatcher:
    """Decides which paths the gate screens. Static assets and probes are skipped."""

    def __init__(self, excluded_prefixes: Iterable[str] = (), excluded_extensions: Iterable[str] = ()) -> None:
        self._prefixes = tuple(excluded_prefixes)
        self._extensions = tuple(f".{ext.lstrip('.').lower()}" for ext in excluded_extensions)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RouteMatcher":
        return cls(settings.excluded_path_prefixes, settings.excluded_extensions)

    def matches(self, path: str) -> bool:
        if any(path.startswith(prefix) for prefix in self._prefixes):
            return False
        if self._extensions and path.lower().endswith(self._extensions):
            return False
        return True


def to_guard_request(request: Request) -> GuardRequest:
    return GuardRequest(
        method=request.method,
        path=request.url.path,
        headers=tuple(request.headers.items()),
        query_params=tuple(request.query_params.multi_items()),
    )


class SecurityGateMiddleware(BaseHTTPMiddleware):
    """Screens each matching request before it reaches routing."""

    def __init__(
        self,
        app: ASGIApp,
        gate: SecurityGate | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
        matcher: RouteMatcher | None = None,
    ) -> None:
        super().__init__(app)
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._gate = gate or SecurityGate.from_settings(self._settings, clock=self._clock)
        self._matcher = matcher or RouteMatcher.from_settings(self._settings)
        self._security_headers: Mapping[str, str] = dict(self._settings.security_headers)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not self._matcher.matches(request.url.path):
            return await call_next(request)

        start_time = time.perf_counter()
        request_id = generate_request_id(self._clock.now())
        request.state.request_id = request_id

        guard_request = to_guard_request(request)
        context = self._gate.resolve(guard_request)
        bind_request_context(request_id, context.client_ip, guard_request.method, guard_request.path)

        try:
            decision = await self._gate.evaluate(guard_request, context)
            production = self._settings.is_production

            if not decision.admitted:
                logger.info(
                    "request_refused",
                    verdict=decision.verdict.value,
                    status=decision.status_code,
                    reason=decision.reason.value if decision.reason else None,
                )
                return build_denial_response(
                    decision,
                    request_id,
                    now=self._clock.now(),
                    elapsed_seconds=time.perf_counter() - start_time,
                    production=production,
                )

            response = await call_next(request)
            decorate_admitted(
                response.headers,
                decision,
                request_id,
                elapsed_seconds=time.perf_counter() - start_time,
                production=production,
                security_headers=self._security_headers,
            )
            return response
        finally:
            clear_request_context()
