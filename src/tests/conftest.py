"""Pytest configuration and fixtures."""

import pytest

import fakeredis.aioredis


@pytest.fixture
def clock():
    """A clock that only moves when a test advances it."""
    from gatekeeper.clock import ManualClock

    return ManualClock(start=1_700_000_000.0)


@pytest.fixture
def memory_store(clock):
    """In-memory store driven by the manual clock."""
    from gatekeeper.store import InMemoryStore

    return InMemoryStore(clock=clock, sweep_interval_seconds=60)


@pytest.fixture
def mock_redis():
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def settings():
    """Default settings, isolated from the environment."""
    from gatekeeper.config import Settings

    return Settings(_env_file=None)


@pytest.fixture
def limiter(memory_store, clock):
    """Fixed window limiter with the default 100 requests / 15 minutes."""
    from gatekeeper.algorithms.fixed_window import FixedWindowRateLimiter

    return FixedWindowRateLimiter(store=memory_store, clock=clock, limit=100, window_seconds=900)


@pytest.fixture
def gate(settings, memory_store, clock):
    """The standard check chain over the in-memory store."""
    from gatekeeper.gate import SecurityGate

    return SecurityGate.from_settings(settings, store=memory_store, clock=clock)


@pytest.fixture
def make_request():
    """Build a GuardRequest with sensible browser-like defaults."""
    from gatekeeper.models import GuardRequest

    def _make(
        path="/dashboard",
        method="GET",
        headers=None,
        query=None,
        ip="1.2.3.4",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0",
    ):
        pairs = [("host", "example.com")]
        if ip is not None:
            pairs.append(("x-forwarded-for", ip))
        if user_agent is not None:
            pairs.append(("user-agent", user_agent))
        pairs.extend(headers or [])
        return GuardRequest(
            method=method,
            path=path,
            headers=tuple(pairs),
            query_params=tuple(query or []),
        )

    return _make
