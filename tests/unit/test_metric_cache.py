"""Unit tests for the metric catalog cache."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from rise_eval.models.metric import Metric
from rise_eval.services.errors import NetworkError
from rise_eval.services.metric_cache import MetricCatalogCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestCaching:
    """Tests for TTL behavior."""

    @pytest.mark.asyncio
    async def test_fetches_once_within_ttl(self, metrics, clock):
        """Test repeat calls inside the TTL reuse the cached catalog."""
        fetcher = AsyncMock(return_value=metrics)
        cache = MetricCatalogCache(fetcher, ttl_seconds=300, clock=clock)

        first = await cache.get_metrics()
        clock.now += 299
        second = await cache.get_metrics()

        assert first == second == metrics
        assert fetcher.await_count == 1

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self, metrics, clock):
        """Test the catalog is fetched again once the TTL expires."""
        fetcher = AsyncMock(return_value=metrics)
        cache = MetricCatalogCache(fetcher, ttl_seconds=300, clock=clock)

        await cache.get_metrics()
        clock.now += 300
        await cache.get_metrics()

        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_returned_list_is_a_copy(self, metrics, clock):
        """Test callers cannot mutate the cached catalog."""
        cache = MetricCatalogCache(AsyncMock(return_value=metrics), clock=clock)

        result = await cache.get_metrics()
        result.clear()

        assert len(await cache.get_metrics()) == 5

    @pytest.mark.asyncio
    async def test_empty_catalog_is_cached(self, clock):
        """Test an explicitly empty catalog is a valid cached value."""
        fetcher = AsyncMock(return_value=[])
        cache = MetricCatalogCache(fetcher, clock=clock)

        assert await cache.get_metrics() == []
        assert await cache.get_metrics() == []
        assert fetcher.await_count == 1


class TestSingleFlight:
    """Tests for concurrent fetch de-duplication."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, metrics, clock):
        """Test concurrent callers await the same in-flight request."""
        release = asyncio.Event()
        calls = 0

        async def fetcher() -> list[Metric]:
            nonlocal calls
            calls += 1
            await release.wait()
            return metrics

        cache = MetricCatalogCache(fetcher, clock=clock)

        pending = [asyncio.ensure_future(cache.get_metrics()) for _ in range(3)]
        await asyncio.sleep(0)
        assert cache.fetch_in_flight is True

        release.set()
        results = await asyncio.gather(*pending)

        assert calls == 1
        assert all(r == metrics for r in results)
        assert cache.fetch_in_flight is False

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter(self, clock):
        """Test a failed shared fetch raises for every concurrent caller."""
        release = asyncio.Event()

        async def fetcher() -> list[Metric]:
            await release.wait()
            raise NetworkError("down")

        cache = MetricCatalogCache(fetcher, clock=clock)
        pending = [asyncio.ensure_future(cache.get_metrics()) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(*pending, return_exceptions=True)

        assert all(isinstance(r, NetworkError) for r in results)
        assert cache.fetch_in_flight is False


class TestFailure:
    """Tests for error propagation and invalidation."""

    @pytest.mark.asyncio
    async def test_error_propagates_and_invalidates(self, metrics, clock):
        """Test a failure after expiry clears the stale value and propagates."""
        fetcher = AsyncMock(side_effect=[metrics, NetworkError("down"), metrics])
        cache = MetricCatalogCache(fetcher, ttl_seconds=300, clock=clock)

        await cache.get_metrics()
        clock.now += 301

        with pytest.raises(NetworkError):
            await cache.get_metrics()
        assert cache.is_fresh is False
        assert cache.fetch_in_flight is False

        assert await cache.get_metrics() == metrics
        assert fetcher.await_count == 3

    @pytest.mark.asyncio
    async def test_error_not_converted_to_empty_list(self, clock):
        """Test a fetch error is never reported as an empty catalog."""
        cache = MetricCatalogCache(AsyncMock(side_effect=NetworkError("down")), clock=clock)

        with pytest.raises(NetworkError):
            await cache.get_metrics()


class TestLifecycle:
    """Tests for invalidate and reset."""

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, metrics, clock):
        """Test invalidate drops the cached value."""
        fetcher = AsyncMock(return_value=metrics)
        cache = MetricCatalogCache(fetcher, clock=clock)

        await cache.get_metrics()
        cache.invalidate()
        await cache.get_metrics()

        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_reset_cancels_in_flight_fetch(self, metrics, clock):
        """Test reset returns the cache to its initial state."""
        started = asyncio.Event()

        async def fetcher() -> list[Metric]:
            started.set()
            await asyncio.sleep(10)
            return metrics

        cache = MetricCatalogCache(fetcher, clock=clock)
        waiter = asyncio.ensure_future(cache.get_metrics())
        await started.wait()

        cache.reset()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert cache.fetch_in_flight is False
        assert cache.is_fresh is False
