"""Rate-limit window stores.

The limiter only needs three operations: ``get``, ``compare_and_swap`` and
``put`` with an expiry. ``InMemoryStore`` serves a single process;
``RedisStore`` shares windows across instances and lets Redis reclaim
expired keys.
"""

import threading
from abc import ABC, abstractmethod

import redis.asyncio as redis
import structlog
from redis.exceptions import NoScriptError

from gatekeeper.clock import Clock, SystemClock
from gatekeeper.config import Settings, get_settings
from gatekeeper.errors import StoreError
from gatekeeper.metrics import metrics
from gatekeeper.models import RateWindow

logger = structlog.get_logger()


class RateLimitStore(ABC):
    """Keyed storage for rate-limit windows."""

    async def connect(self) -> None:
        """Open connections. No-op for local stores."""

    async def disconnect(self) -> None:
        """Release connections. No-op for local stores."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get(self, key: str) -> RateWindow | None:
        """Return the live window for ``key``, or None if absent or expired."""

    @abstractmethod
    async def compare_and_swap(
        self, key: str, expected: RateWindow | None, new: RateWindow, ttl_seconds: float
    ) -> bool:
        """Store ``new`` only if the current window still equals ``expected``."""

    @abstractmethod
    async def put(self, key: str, window: RateWindow, ttl_seconds: float) -> None:
        """Unconditionally store ``window`` for ``ttl_seconds``."""


class InMemoryStore(RateLimitStore):
    """Process-local store. Safe under both threads and asyncio."""

    def __init__(self, clock: Clock | None = None, sweep_interval_seconds: float = 60.0) -> None:
        self._clock = clock or SystemClock()
        self._sweep_interval = sweep_interval_seconds
        self._lock = threading.Lock()
        # key -> (window, expires_at)
        self._entries: dict[str, tuple[RateWindow, float]] = {}
        self._last_sweep = self._clock.now()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> RateWindow | None:
        now = self._clock.now()
        with self._lock:
            return self._live(key, now)

    async def compare_and_swap(
        self, key: str, expected: RateWindow | None, new: RateWindow, ttl_seconds: float
    ) -> bool:
        now = self._clock.now()
        with self._lock:
            if self._live(key, now) != expected:
                metrics.store_operations_total.labels(operation="cas", status="conflict").inc()
                return False
            self._entries[key] = (new, now + ttl_seconds)
            self._maybe_sweep(now)
        metrics.store_operations_total.labels(operation="cas", status="ok").inc()
        return True

    async def put(self, key: str, window: RateWindow, ttl_seconds: float) -> None:
        now = self._clock.now()
        with self._lock:
            self._entries[key] = (window, now + ttl_seconds)
            self._maybe_sweep(now)
        metrics.store_operations_total.labels(operation="put", status="ok").inc()

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock.now()
        with self._lock:
            return self._sweep(now)

    def _live(self, key: str, now: float) -> RateWindow | None:
        # Caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        window, expires_at = entry
        if now > expires_at:
            del self._entries[key]
            return None
        return window

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self._sweep_interval:
            self._sweep(now)

    def _sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        metrics.store_evictions_total.inc(len(expired))
        metrics.store_keys.set(len(self._entries))
        if expired:
            logger.debug("store_swept", evicted=len(expired), remaining=len(self._entries))
        return len(expired)


# Compare-and-swap in one round trip. An empty expected value means "absent".
COMPARE_AND_SWAP_SCRIPT = """
local key = KEYS[1]
local expected = ARGV[1]
local new = ARGV[2]
local ttl_ms = tonumber(ARGV[3])

local current = redis.call('GET', key)
if current == false then
    current = ''
end

if current ~= expected then
    return 0
end

redis.call('SET', key, new, 'PX', ttl_ms)
return 1
"""


def encode_window(window: RateWindow | None) -> str:
    """Serialize a window to the exact string compared by the CAS script."""
    if window is None:
        return ""
    return f"{window.count}:{int(round(window.reset_at * 1000))}"


def decode_window(raw: str | None) -> RateWindow | None:
    if not raw:
        return None
    count, reset_ms = raw.split(":", 1)
    return RateWindow(count=int(count), reset_at=int(reset_ms) / 1000)


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(ttl_seconds * 1000))


class RedisStore(RateLimitStore):
    """Store shared through Redis. Keys expire on their own."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._prefix = self._settings.redis_key_prefix
        self._client: redis.Redis | None = None
        self._cas_sha: str | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        settings = self._settings
        self._client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
            max_connections=settings.redis_pool_size,
        )
        # Test connection
        await self._client.ping()
        logger.info("redis_connected", host=settings.redis_host, port=settings.redis_port)

        self._cas_sha = await self._client.script_load(COMPARE_AND_SWAP_SCRIPT)
        logger.info("lua_scripts_loaded", scripts=["compare_and_swap"])

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        """Check if Redis is healthy."""
        try:
            if self._client:
                await self._client.ping()
                return True
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
        return False

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _require_client(self) -> redis.Redis:
        if not self._client:
            raise StoreError("Redis not connected")
        return self._client

    async def get(self, key: str) -> RateWindow | None:
        client = self._require_client()
        raw = await client.get(self._key(key))
        metrics.store_operations_total.labels(operation="get", status="ok").inc()
        return decode_window(raw)

    async def compare_and_swap(
        self, key: str, expected: RateWindow | None, new: RateWindow, ttl_seconds: float
    ) -> bool:
        client = self._require_client()
        if not self._cas_sha:
            self._cas_sha = await client.script_load(COMPARE_AND_SWAP_SCRIPT)

        try:
            result = await client.evalsha(  # type: ignore[misc]
                self._cas_sha,
                1,
                self._key(key),
                encode_window(expected),
                encode_window(new),
                str(_ttl_ms(ttl_seconds)),
            )
        except NoScriptError:
            # Script was flushed, reload it
            self._cas_sha = await client.script_load(COMPARE_AND_SWAP_SCRIPT)
            return await self.compare_and_swap(key, expected, new, ttl_seconds)

        swapped = int(result) == 1
        metrics.store_operations_total.labels(
            operation="cas", status="ok" if swapped else "conflict"
        ).inc()
        return swapped

    async def put(self, key: str, window: RateWindow, ttl_seconds: float) -> None:
        client = self._require_client()
        await client.set(self._key(key), encode_window(window), px=_ttl_ms(ttl_seconds))
        metrics.store_operations_total.labels(operation="put", status="ok").inc()


# Singleton instance
_store: RateLimitStore | None = None


def get_store() -> RateLimitStore:
    """Get the store singleton for the configured backend."""
    global _store
    if _store is None:
        settings = get_settings()
        if settings.store_backend == "redis":
            _store = RedisStore(settings)
        else:
            _store = InMemoryStore(sweep_interval_seconds=settings.store_sweep_interval_seconds)
    return _store


def reset_store() -> None:
    """Forget the store singleton so the next call rebuilds it."""
    global _store
    _store = None
