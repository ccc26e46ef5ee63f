import asyncio
import time

import structlog

from .settings import FetcherConfig

logger = structlog.get_logger(__name__)


class AdmissionLimiter:
    """
    Global admission control for browser sessions.

    A task starts only when all of these hold:
    - fewer than `max_concurrent` tasks are running
    - the reservoir has a token left (it is reset to `reservoir` at every
      `refresh_interval_s` boundary, counted from limiter creation)
    - at least `min_time_s` passed since the previous start

    Waiting tasks are admitted strictly in arrival order.
    """

    def __init__(
        self,
        max_concurrent: int = 1,
        reservoir: int = 4,
        refresh_interval_s: float = 60.0,
        min_time_s: float = 0.0,
        clock=time.monotonic,
        sleep=asyncio.sleep,
    ):
        if max_concurrent < 1 or reservoir < 1 or refresh_interval_s <= 0:
            raise ValueError("max_concurrent, reservoir and refresh_interval_s must be positive")

        self.max_concurrent = max_concurrent
        self.reservoir = reservoir
        self.refresh_interval_s = refresh_interval_s
        self.min_time_s = min_time_s
        self._clock = clock
        self._sleep = sleep

        self._slots = asyncio.Semaphore(max_concurrent)
        self._admission = asyncio.Lock()
        self._tokens = reservoir
        self._epoch = clock()
        self._next_refill = self._epoch + refresh_interval_s
        self._last_start: float | None = None
        self._queued = 0
        self._running = 0

    @classmethod
    def from_config(cls, config: FetcherConfig, **kwargs) -> "AdmissionLimiter":
        return cls(
            max_concurrent=config.max_concurrent,
            reservoir=config.reservoir,
            refresh_interval_s=config.reservoir_refresh_interval_s,
            min_time_s=config.min_time_s,
            **kwargs,
        )

    def _refill(self, now: float) -> None:
        if now < self._next_refill:
            return
        ticks = int((now - self._epoch) // self.refresh_interval_s)
        self._next_refill = self._epoch + (ticks + 1) * self.refresh_interval_s
        self._tokens = self.reservoir

    async def _take_token(self) -> None:
        while True:
            now = self._clock()
            self._refill(now)

            if self._tokens <= 0:
                wait = self._next_refill - now
                logger.debug("limiter_reservoir_empty", wait_s=round(wait, 3), queued=self._queued)
                await self._sleep(wait)
                continue

            if self._last_start is not None and self.min_time_s > 0:
                wait = self._last_start + self.min_time_s - now
                if wait > 0:
                    await self._sleep(wait)
                    continue

            self._tokens -= 1
            self._last_start = now
            return

    async def schedule(self, fn, *args, **kwargs):
        """Run `await fn(*args, **kwargs)` once admitted and return its result."""
        self._queued += 1
        try:
            async with self._admission:
                await self._slots.acquire()
                try:
                    await self._take_token()
                except BaseException:
                    self._slots.release()
                    raise
        finally:
            self._queued -= 1

        self._running += 1
        try:
            return await fn(*args, **kwargs)
        finally:
            self._running -= 1
            self._slots.release()

    def counts(self) -> dict:
        self._refill(self._clock())
        return {"running": self._running, "queued": self._queued, "reservoir": self._tokens}
