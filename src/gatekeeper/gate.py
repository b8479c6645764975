"""The security gate: an ordered chain of request checks."""

import math
import time
from collections.abc import Sequence
from typing import Literal, Protocol

import structlog

from gatekeeper.algorithms.fixed_window import FixedWindowRateLimiter
from gatekeeper.clock import Clock, SystemClock
from gatekeeper.config import Settings, get_settings
from gatekeeper.headers import validate_headers
from gatekeeper.identity import resolve_client_ip
from gatekeeper.metrics import metrics
from gatekeeper.models import ClientKey, Decision, DenyReason, GateContext, GuardRequest
from gatekeeper.patterns import scan
from gatekeeper.rules import DenyLists
from gatekeeper.store import RateLimitStore, get_store

logger = structlog.get_logger()

FailMode = Literal["open", "closed"]


class Check(Protocol):
    """One stage of the gate. Returning a decision stops the chain."""

    name: str

    async def __call__(self, request: GuardRequest, context: GateContext) -> Decision | None: ...


class DenyListCheck:
    name = "deny_list"

    def __init__(self, deny_lists: DenyLists) -> None:
        self._deny_lists = deny_lists

    async def __call__(self, request: GuardRequest, context: GateContext) -> Decision | None:
        reason = self._deny_lists.match(context.client_ip, context.user_agent, request.path)
        if reason is None:
            return None
        return Decision.deny(403, "Access denied", reason)


class RateLimitCheck:
    name = "rate_limit"

    def __init__(self, limiter: FixedWindowRateLimiter, clock: Clock | None = None) -> None:
        self._limiter = limiter
        self._clock = clock or SystemClock()

    async def __call__(self, request: GuardRequest, context: GateContext) -> Decision | None:
        key = ClientKey(client_id=context.client_ip, method=request.method)
        result = await self._limiter.check_and_consume(key)
        if result.allowed:
            context.rate_limit = result
            return None

        retry_after = max(1, math.ceil(result.reset_at - self._clock.now()))
        logger.warning(
            "rate_limit_exceeded",
            key=str(key),
            count=result.count,
            limit=result.limit,
            retry_after=retry_after,
        )
        return Decision.throttle(result, retry_after)


class HeaderCheck:
    name = "headers"

    def __init__(self, max_bytes: int, api_prefix: str) -> None:
        self._max_bytes = max_bytes
        self._api_prefix = api_prefix

    async def __call__(self, request: GuardRequest, context: GateContext) -> Decision | None:
        validation = validate_headers(request.headers, request.path, self._max_bytes, self._api_prefix)
        if validation.valid or validation.reason is None:
            return None
        logger.warning("request_rejected", reason=validation.reason.value)
        return Decision.deny(400, "Bad Request", validation.reason)


class QueryPatternCheck:
    name = "query_patterns"

    async def __call__(self, request: GuardRequest, context: GateContext) -> Decision | None:
        params = request.query_params
        if not params:
            return None

        threat = scan(params)
        if threat is None:
            return None

        reason = DenyReason(threat.category.value)
        logger.warning("request_rejected", reason=reason.value, pattern=threat.name)
        return Decision.deny(400, "Bad Request", reason)


class SecurityGate:
    """Runs checks in order and stops at the first one that refuses the request."""

    def __init__(self, checks: Sequence[Check], fail_mode: FailMode = "closed") -> None:
        self._checks = tuple(checks)
        self._fail_mode = fail_mode

    @property
    def checks(self) -> tuple[Check, ...]:
        return self._checks

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        store: RateLimitStore | None = None,
        clock: Clock | None = None,
    ) -> "SecurityGate":
        """Build the standard chain: deny-lists, rate limit, headers, query patterns."""
        settings = settings or get_settings()
        clock = clock or SystemClock()
        limiter = FixedWindowRateLimiter(
            store=store or get_store(),
            clock=clock,
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
            cas_attempts=settings.store_cas_attempts,
        )
        return cls(
            checks=[
                DenyListCheck(DenyLists.from_settings(settings)),
                RateLimitCheck(limiter, clock),
                HeaderCheck(settings.max_header_bytes, settings.api_path_prefix),
                QueryPatternCheck(),
            ],
            fail_mode=settings.fail_mode,
        )

    @staticmethod
    def resolve(request: GuardRequest) -> GateContext:
        """Work out who is asking before any check runs."""
        return GateContext(
            client_ip=resolve_client_ip(request.headers),
            user_agent=request.header("user-agent") or "",
        )

    async def evaluate(self, request: GuardRequest, context: GateContext | None = None) -> Decision:
        """Evaluate a request and return the gate's decision."""
        start_time = time.perf_counter()
        context = context or self.resolve(request)

        decision = await self._run(request, context)

        metrics.check_duration.observe(time.perf_counter() - start_time)
        metrics.decisions_total.labels(
            verdict=decision.verdict.value,
            reason=decision.reason.value if decision.reason else "none",
        ).inc()
        return decision

    async def _run(self, request: GuardRequest, context: GateContext) -> Decision:
        for check in self._checks:
            try:
                decision = await check(request, context)
            except Exception as e:
                logger.exception("gate_check_failed", check=check.name, error=str(e))
                if self._fail_mode == "closed":
                    return Decision.deny(503, "Service Unavailable", DenyReason.INTERNAL_ERROR)
                # Fail open: skip the broken check, keep the rest of the chain
                continue
            if decision is not None:
                return decision

        return Decision.admit(context.rate_limit)
