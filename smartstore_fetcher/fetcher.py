import asyncio
import time
from datetime import datetime, timezone

import structlog

from .errors import classification_of
from .limiter import AdmissionLimiter
from .metrics import MetricsTracker
from .models import ProductResult, ResultMetadata
from .retry import RetryController
from .runner import SessionRunner
from .settings import FetcherConfig
from .utils import cache_key_for, random_delay

logger = structlog.get_logger(__name__)


class ProductFetcher:
    """
    Entry point for product lookups: cache, then limiter, then retries.

    - Cache hits return immediately, flagged cached=True, without touching
      the limiter or a browser
    - Misses run under the admission limiter: a human-like pause, then the
      retry controller driving the session runner
    - Successful results are written back to the cache; a cache failure is
      logged and never reaches the caller
    - Failures are recorded with their classification and re-raised as-is
    """

    def __init__(
        self,
        cache,
        limiter: AdmissionLimiter,
        retry: RetryController,
        runner: SessionRunner,
        metrics: MetricsTracker,
        config: FetcherConfig,
        sleep=asyncio.sleep,
        clock=time.perf_counter,
    ):
        self.cache = cache
        self.limiter = limiter
        self.retry = retry
        self.runner = runner
        self.metrics = metrics
        self.config = config
        self._sleep = sleep
        self._clock = clock

    def _elapsed_ms(self, t0: float) -> int:
        return round((self._clock() - t0) * 1000)

    async def fetch(self, url: str) -> ProductResult:
        t0 = self._clock()
        key = cache_key_for(url, self.config.cache_key_prefix)

        try:
            cached = await self._read_cache(key)
            if cached is not None:
                cached.metadata.cached = True
                cached.metadata.latency = self._elapsed_ms(t0)
                self.metrics.record(cached.metadata.latency, success=True, cached=True)
                logger.debug("cache_hit", url=url)
                return cached

            scraped = await self.limiter.schedule(self._fetch_fresh, url)
        except Exception as e:
            latency = self._elapsed_ms(t0)
            classification = classification_of(e)
            self.metrics.record(latency, success=False, error=classification)
            logger.error("fetch_failed", url=url, latency_ms=latency, classification=classification, error=str(e))
            raise

        latency = self._elapsed_ms(t0)
        result = ProductResult(
            product_detail=scraped.product_detail,
            benefits=scraped.benefits,
            metadata=ResultMetadata(
                scraped_at=datetime.now(timezone.utc).isoformat(),
                latency=latency,
                cached=False,
            ),
        )

        await self._write_cache(key, result)
        self.metrics.record(latency, success=True)
        logger.info("fetch_succeeded", url=url, latency_ms=latency)
        return result

    async def _fetch_fresh(self, url: str):
        await random_delay(self.config.before_request_delay_s, sleep=self._sleep)
        return await self.retry.execute(
            lambda attempt, proxy: self.runner.run(url, proxy=proxy, attempt=attempt),
            self.config.max_attempts,
        )

    async def _read_cache(self, key: str) -> ProductResult | None:
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get(key)
        except Exception as e:
            logger.error("cache_read_failed", key=key, error=str(e))
            return None
        if not raw:
            return None
        try:
            return ProductResult.from_json(raw)
        except ValueError as e:
            logger.warning("cache_entry_invalid", key=key, error=str(e))
            return None

    async def _write_cache(self, key: str, result: ProductResult) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set_with_ttl(key, result.to_json(), self.config.cache_ttl_s)
            logger.debug("cache_written", key=key, ttl_s=self.config.cache_ttl_s)
        except Exception as e:
            logger.error("cache_write_failed", key=key, error=str(e))
