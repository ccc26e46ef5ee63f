import time
from dataclasses import dataclass
from enum import Enum

import structlog

from .settings import FetcherConfig, Proxy

logger = structlog.get_logger(__name__)


class Severity(Enum):
    NORMAL = "normal"
    ESCALATED = "escalated"


@dataclass
class ProxyHealth:
    proxy: Proxy
    failure_count: int = 0
    in_cooldown: bool = False
    last_used_at: float = 0.0


class ProxyRegistry:
    """
    Fixed pool of egress proxies with failure counting and timed cooldown.

    - Selection rotates a cursor over the pool and skips proxies in cooldown
    - A proxy whose cooldown has elapsed is rehabilitated when the scan reaches it
    - When every proxy is cooling down, the least recently used one is returned anyway
    - Escalated failures (blocks) add several steps at once so one block can
      trip the cooldown

    Every method runs without awaiting, so each call is a single atomic step
    on the event loop regardless of how many fetches are in flight.
    """

    def __init__(
        self,
        proxies: list[Proxy],
        max_failures: int = 3,
        cooldown_s: float = 300.0,
        blocked_failure_step: int = 3,
        clock=time.monotonic,
    ):
        self.max_failures = max_failures
        self.cooldown_s = cooldown_s
        self.blocked_failure_step = blocked_failure_step
        self._clock = clock
        self._pool = [ProxyHealth(proxy=p) for p in proxies]
        self._by_key = {h.proxy.key: h for h in self._pool}
        self._cursor = 0

    @classmethod
    def from_config(cls, proxies: list[Proxy], config: FetcherConfig, clock=time.monotonic) -> "ProxyRegistry":
        return cls(
            proxies,
            max_failures=config.max_failures,
            cooldown_s=config.cooldown_s,
            blocked_failure_step=config.blocked_failure_step,
            clock=clock,
        )

    def __len__(self) -> int:
        return len(self._pool)

    def select_healthy(self, exclude: Proxy | None = None) -> Proxy | None:
        """
        Next proxy not in cooldown, starting from the rotating cursor.

        `exclude` is skipped while any other proxy is usable, so a retry
        never lands on the proxy that just failed unless it is the only one.
        Returns None only for an empty pool.
        """
        if not self._pool:
            return None

        now = self._clock()
        size = len(self._pool)
        skipped = None

        for _ in range(size * 2):
            health = self._pool[self._cursor]
            self._cursor = (self._cursor + 1) % size

            if health.in_cooldown and now - health.last_used_at >= self.cooldown_s:
                health.in_cooldown = False
                health.failure_count = 0
                logger.info("proxy_cooldown_expired", proxy=health.proxy.key)

            if health.in_cooldown:
                continue
            if exclude is not None and health.proxy.key == exclude.key and size > 1:
                skipped = health
                continue

            health.last_used_at = now
            return health.proxy

        if skipped is not None:
            skipped.last_used_at = now
            return skipped.proxy

        logger.warning("all_proxies_in_cooldown", detail="using least recently used")
        return self._least_recently_used(exclude)

    def _least_recently_used(self, exclude: Proxy | None) -> Proxy:
        candidates = [h for h in self._pool if exclude is None or h.proxy.key != exclude.key] or self._pool
        # not stamped: its cooldown keeps counting from the failure that started it
        return min(candidates, key=lambda h: h.last_used_at).proxy

    def report_failure(self, proxy: Proxy, severity: Severity = Severity.NORMAL) -> None:
        health = self._by_key.get(proxy.key)
        if health is None:
            return

        step = self.blocked_failure_step if severity is Severity.ESCALATED else 1
        health.failure_count += step
        logger.warning("proxy_failure", proxy=proxy.key, failure_count=health.failure_count, severity=severity.value)

        if health.failure_count >= self.max_failures:
            health.in_cooldown = True
            health.last_used_at = self._clock()
            logger.warning("proxy_cooldown_started", proxy=proxy.key, cooldown_s=self.cooldown_s)

    def report_success(self, proxy: Proxy) -> None:
        health = self._by_key.get(proxy.key)
        if health is not None and health.failure_count > 0:
            health.failure_count -= 1

    def health_of(self, proxy: Proxy) -> ProxyHealth | None:
        return self._by_key.get(proxy.key)

    def stats(self) -> list[dict]:
        now = self._clock()
        return [
            {
                "proxy": h.proxy.key,
                "failure_count": h.failure_count,
                "in_cooldown": h.in_cooldown,
                "cooldown_remaining_s": max(0.0, self.cooldown_s - (now - h.last_used_at)) if h.in_cooldown else 0.0,
            }
            for h in self._pool
        ]
