"""Time-bounded, single-flight cache of the global metric catalog."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog

from rise_eval.models.metric import Metric

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300

MetricFetcher = Callable[[], Awaitable[list[Metric]]]


class MetricCatalogCache:
    """Process-wide metric catalog with TTL and fetch de-duplication.

    Concurrent callers share one in-flight fetch. A failed fetch
    invalidates the cache and propagates to every waiting caller.
    """

    def __init__(
        self,
        fetcher: MetricFetcher,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetcher = fetcher
        self._ttl = ttl_seconds
        self._clock = clock
        self._metrics: Optional[list[Metric]] = None
        self._fetched_at = 0.0
        self._inflight: Optional[asyncio.Task] = None

    @property
    def is_fresh(self) -> bool:
        return self._metrics is not None and self._clock() - self._fetched_at < self._ttl

    @property
    def fetch_in_flight(self) -> bool:
        return self._inflight is not None

    async def get_metrics(self) -> list[Metric]:
        """Return the cached catalog, fetching it when stale or absent."""
        if self.is_fresh:
            return list(self._metrics)

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch())

        metrics = await asyncio.shield(self._inflight)
        return list(metrics)

    async def _fetch(self) -> list[Metric]:
        try:
            metrics = await self._fetcher()
            self._metrics = list(metrics)
            self._fetched_at = self._clock()
            logger.debug("metrics_cache_refreshed", count=len(self._metrics))
            return self._metrics
        except Exception as e:
            logger.error("metrics_fetch_failed", error=str(e), error_type=type(e).__name__)
            self._metrics = None
            raise
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

    def invalidate(self) -> None:
        """Drop the cached value; the next call fetches again."""
        self._metrics = None
        self._fetched_at = 0.0

    def reset(self) -> None:
        """Return to the initial state, cancelling any in-flight fetch."""
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        self.invalidate()
