"""Fixed window rate limiter."""

from __future__ import annotations

import structlog

from gatekeeper.clock import Clock, SystemClock
from gatekeeper.errors import StoreContentionError
from gatekeeper.models import ClientKey, RateLimitResult, RateWindow
from gatekeeper.store import RateLimitStore

logger = structlog.get_logger()

DEFAULT_LIMIT = 100
DEFAULT_WINDOW_SECONDS = 15 * 60
DEFAULT_CAS_ATTEMPTS = 16


class FixedWindowRateLimiter:
    """Counts requests per client key in windows that reset at fixed boundaries."""

    def __init__(
        self,
        store: RateLimitStore,
        clock: Clock | None = None,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        cas_attempts: int = DEFAULT_CAS_ATTEMPTS,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            store: Where windows live
            clock: Time source, system clock by default
            limit: Requests allowed per window
            window_seconds: Window length
            cas_attempts: Compare-and-swap retries before giving up
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._store = store
        self._clock = clock or SystemClock()
        self._limit = limit
        self._window = window_seconds
        self._cas_attempts = cas_attempts

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window

    async def check_and_consume(self, key: ClientKey) -> RateLimitResult:
        """
        Consume one request from the key's window.

        A fresh window starts at count 1 when none exists or the old one has
        expired. A full window refuses the request without touching the
        stored count.

        Returns: the count and reset time after this request
        """
        store_key = str(key)

        for _ in range(self._cas_attempts):
            now = self._clock.now()
            current = await self._store.get(store_key)

            if current is None or current.is_expired(now):
                fresh = RateWindow(count=1, reset_at=now + self._window)
                if await self._store.compare_and_swap(store_key, current, fresh, self._window):
                    return self._result(True, fresh)
                continue

            if current.count >= self._limit:
                logger.debug("rate_limit_full", key=store_key, count=current.count)
                return self._result(False, current)

            bumped = RateWindow(count=current.count + 1, reset_at=current.reset_at)
            ttl = max(current.reset_at - now, 0.001)
            if await self._store.compare_and_swap(store_key, current, bumped, ttl):
                return self._result(True, bumped)

        raise StoreContentionError(store_key, self._cas_attempts)

    def _result(self, allowed: bool, window: RateWindow) -> RateLimitResult:
        return RateLimitResult(
            allowed=allowed,
            count=window.count,
            reset_at=window.reset_at,
            limit=self._limit,
        )
