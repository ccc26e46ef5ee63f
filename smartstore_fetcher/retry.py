import asyncio

import structlog

from .errors import FetchError
from .policy import retry_delay, severity_for
from .proxies import ProxyRegistry
from .settings import FetcherConfig

logger = structlog.get_logger(__name__)


class RetryController:
    """
    Runs an attempt function up to `max_attempts` times with proxy rotation.

    Each attempt gets a fresh proxy from the registry (never the one that
    just failed, while another is usable). Blocked attempts penalize the
    proxy hard and wait briefly; transient ones count a single failure and
    back off exponentially. When attempts run out, the last classified error
    is raised unchanged. Errors outside the FetchError taxonomy are not
    retried.
    """

    def __init__(self, registry: ProxyRegistry, config: FetcherConfig, sleep=asyncio.sleep):
        self.registry = registry
        self.config = config
        self._sleep = sleep

    async def execute(self, attempt_fn, max_attempts: int | None = None):
        """
        `attempt_fn(attempt, proxy)` is awaited once per attempt; `proxy` is
        None when the pool is empty.
        """
        max_attempts = max_attempts or self.config.max_attempts
        last_failed = None

        for attempt in range(1, max_attempts + 1):
            proxy = self.registry.select_healthy(exclude=last_failed)
            if proxy:
                logger.info("attempt_started", attempt=attempt, max_attempts=max_attempts, proxy=proxy.key)
            else:
                logger.warning("attempt_started", attempt=attempt, max_attempts=max_attempts, proxy=None)

            try:
                result = await attempt_fn(attempt, proxy)
            except FetchError as e:
                if proxy:
                    self.registry.report_failure(proxy, severity_for(e))
                    last_failed = proxy

                logger.warning(
                    "attempt_failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    classification=e.classification,
                    blocked=e.blocked,
                    error=str(e),
                )

                if attempt >= max_attempts:
                    logger.error("attempts_exhausted", max_attempts=max_attempts, classification=e.classification)
                    raise

                delay = retry_delay(e, attempt, self.config)
                logger.info("retry_scheduled", delay_s=round(delay, 2), blocked=e.blocked)
                await self._sleep(delay)
                continue

            if proxy:
                self.registry.report_success(proxy)
                logger.info("proxy_succeeded", proxy=proxy.key)
            return result

        raise ValueError("max_attempts must be at least 1")
