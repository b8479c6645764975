"""Unit tests for the fixed window rate limiter."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock

import pytest

from gatekeeper.algorithms.fixed_window import FixedWindowRateLimiter
from gatekeeper.errors import StoreContentionError
from gatekeeper.models import ClientKey, RateWindow

GET_KEY = ClientKey(client_id="1.2.3.4", method="GET")
POST_KEY = ClientKey(client_id="1.2.3.4", method="POST")


class TestFixedWindowRateLimiter:
    """Tests for FixedWindowRateLimiter."""

    @pytest.mark.asyncio
    async def test_first_request_opens_window(self, limiter, clock):
        result = await limiter.check_and_consume(GET_KEY)

        assert result.allowed is True
        assert result.count == 1
        assert result.reset_at == clock.now() + 900
        assert result.remaining == 99

    @pytest.mark.asyncio
    async def test_counts_up_to_limit(self, limiter):
        for expected in range(1, 101):
            result = await limiter.check_and_consume(GET_KEY)
            assert result.allowed is True
            assert result.count == expected

    @pytest.mark.asyncio
    async def test_request_over_limit_denied_without_increment(self, limiter, memory_store):
        for _ in range(100):
            await limiter.check_and_consume(GET_KEY)

        denied = await limiter.check_and_consume(GET_KEY)
        denied_again = await limiter.check_and_consume(GET_KEY)

        assert denied.allowed is False
        assert denied.count == 100
        assert denied_again.count == 100
        stored = await memory_store.get(str(GET_KEY))
        assert stored.count == 100

    @pytest.mark.asyncio
    async def test_denied_requests_do_not_extend_window(self, limiter, clock):
        first = await limiter.check_and_consume(GET_KEY)
        for _ in range(99):
            await limiter.check_and_consume(GET_KEY)

        clock.advance(600)
        denied = await limiter.check_and_consume(GET_KEY)

        assert denied.allowed is False
        assert denied.reset_at == first.reset_at

    @pytest.mark.asyncio
    async def test_window_resets_after_expiry(self, limiter, clock):
        for _ in range(101):
            await limiter.check_and_consume(GET_KEY)

        clock.advance(901)
        result = await limiter.check_and_consume(GET_KEY)

        assert result.allowed is True
        assert result.count == 1
        assert result.reset_at == clock.now() + 900

    @pytest.mark.asyncio
    async def test_still_denied_exactly_at_reset(self, limiter, clock):
        for _ in range(100):
            await limiter.check_and_consume(GET_KEY)

        clock.advance(900)
        result = await limiter.check_and_consume(GET_KEY)

        assert result.allowed is False

    @pytest.mark.asyncio
    async def test_methods_are_isolated(self, limiter):
        for _ in range(101):
            await limiter.check_and_consume(GET_KEY)

        result = await limiter.check_and_consume(POST_KEY)

        assert result.allowed is True
        assert result.count == 1

    @pytest.mark.asyncio
    async def test_clients_are_isolated(self, limiter):
        for _ in range(101):
            await limiter.check_and_consume(GET_KEY)

        other = ClientKey(client_id="5.6.7.8", method="GET")
        assert (await limiter.check_and_consume(other)).allowed is True

    @pytest.mark.asyncio
    async def test_retries_lost_race(self, clock):
        window = RateWindow(count=5, reset_at=clock.now() + 100)
        store = AsyncMock()
        store.get = AsyncMock(return_value=window)
        store.compare_and_swap = AsyncMock(side_effect=[False, True])
        limiter = FixedWindowRateLimiter(store=store, clock=clock, limit=10, window_seconds=100)

        result = await limiter.check_and_consume(GET_KEY)

        assert result.allowed is True
        assert result.count == 6
        assert store.compare_and_swap.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(self, clock):
        store = AsyncMock()
        store.get = AsyncMock(return_value=None)
        store.compare_and_swap = AsyncMock(return_value=False)
        limiter = FixedWindowRateLimiter(store=store, clock=clock, limit=10, window_seconds=100, cas_attempts=3)

        with pytest.raises(StoreContentionError):
            await limiter.check_and_consume(GET_KEY)

        assert store.compare_and_swap.call_count == 3

    def test_invalid_parameters(self, memory_store):
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(store=memory_store, limit=0)
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(store=memory_store, window_seconds=0)


class TestConcurrentConsumers:
    """Many callers racing on one key."""

    def test_threads_share_one_limit(self, memory_store, clock):
        limiter = FixedWindowRateLimiter(
            store=memory_store, clock=clock, limit=50, window_seconds=900, cas_attempts=1000
        )

        def consume(_: int) -> bool:
            return asyncio.run(limiter.check_and_consume(GET_KEY)).allowed

        with ThreadPoolExecutor(max_workers=16) as pool:
            outcomes = list(pool.map(consume, range(200)))

        assert outcomes.count(True) == 50
        assert asyncio.run(memory_store.get(str(GET_KEY))).count == 50

    @pytest.mark.asyncio
    async def test_tasks_share_one_limit(self, limiter, memory_store):
        results = await asyncio.gather(*(limiter.check_and_consume(GET_KEY) for _ in range(150)))

        assert sum(result.allowed for result in results) == 100
        assert (await memory_store.get(str(GET_KEY))).count == 100
