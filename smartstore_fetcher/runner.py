import asyncio
import random
import time
from pathlib import Path

import structlog

from .errors import BlockedError, BlockReason, FetchError, TransientCause, TransientError, classification_of
from .fingerprints import FingerprintRotator
from .models import ScrapedProduct
from .settings import PROJECT_ROOT, FetcherConfig, Proxy
from .utils import random_delay

logger = structlog.get_logger(__name__)


class SessionRunner:
    """
    Runs one fetch attempt in one browser session.

    The page is watched by two response listeners that race each other:
    - blocking: 429 anywhere, a challenge-page URL, or 490 on a critical API
    - success: a 200 from both the product-detail and the benefits API

    Meanwhile the runner navigates to the product page itself. The first
    side to settle wins and both listeners are detached right away. Every
    failure leaves as a BlockedError or TransientError, after a best-effort
    screenshot; the session is always closed.
    """

    def __init__(
        self,
        engine,
        config: FetcherConfig,
        fingerprints: FingerprintRotator | None = None,
        sleep=asyncio.sleep,
        rng=random,
    ):
        self.engine = engine
        self.config = config
        self.fingerprints = fingerprints or FingerprintRotator()
        self._sleep = sleep
        self._rng = rng

    async def run(self, url: str, proxy: Proxy | None = None, attempt: int = 1) -> ScrapedProduct:
        log = logger.bind(url=url, attempt=attempt, proxy=proxy.key if proxy else None)

        try:
            session = await self.engine.create_session(proxy=proxy, fingerprint=self.fingerprints.next_descriptor())
        except Exception as e:
            log.error("session_unavailable", error=str(e))
            raise TransientError(TransientCause.SESSION_UNAVAILABLE, f"Could not open browser session: {e}") from e

        try:
            return await self._extract(session, url, log)
        except Exception as e:
            log.error("extraction_failed", error=str(e), classification=classification_of(e))
            await self._capture_screenshot(session, log)
            if isinstance(e, FetchError):
                raise
            raise TransientError(TransientCause.UNKNOWN, str(e) or type(e).__name__) from e
        finally:
            try:
                await session.close()
            except Exception as close_error:
                log.error("session_close_failed", error=str(close_error))

    async def _extract(self, session, url: str, log) -> ScrapedProduct:
        log.info("navigating")
        detail_response, benefits_response = await self._race(session, url, log)

        # a response can slip past the listener's status filter during the race
        for name, response in (("Product detail", detail_response), ("Benefits", benefits_response)):
            if response.status != 200:
                raise TransientError(TransientCause.UNKNOWN, f"{name} API returned status {response.status}")

        await random_delay(self.config.after_capture_delay_s, sleep=self._sleep)
        await self.auto_scroll(session)
        await random_delay(self.config.after_scroll_delay_s, sleep=self._sleep)

        product_detail = await self._parse(detail_response, "Product detail")
        benefits = await self._parse(benefits_response, "Benefits")

        log.info("extraction_succeeded")
        return ScrapedProduct(product_detail=product_detail, benefits=benefits)

    def blocking_reason(self, url: str, status: int) -> BlockReason | None:
        """Classify a single observed response; None when it is not a blocking signal."""
        if status == 429:
            return BlockReason.RATE_LIMITED
        if any(pattern in url for pattern in self.config.captcha_patterns):
            return BlockReason.CAPTCHA
        if status == 490 and any(pattern in url for pattern in self.config.critical_patterns):
            return BlockReason.ACCESS_DENIED
        return None

    async def _race(self, session, url: str, log):
        loop = asyncio.get_running_loop()
        blocked = loop.create_future()
        detail = loop.create_future()
        benefits = loop.create_future()

        def on_blocking(response):
            if blocked.done():
                return
            reason = self.blocking_reason(response.url, response.status)
            if reason:
                log.warning("blocking_detected", reason=reason.value, response_url=response.url, status=response.status)
                blocked.set_result(reason)

        def on_success(response):
            if response.status != 200:
                return
            if not detail.done() and self.config.product_detail_pattern in response.url:
                detail.set_result(response)
            elif not benefits.done() and self.config.benefits_pattern in response.url:
                benefits.set_result(response)

        session.on_response(on_blocking)
        session.on_response(on_success)

        timeout = self.config.response_timeout_s
        waiters = {
            asyncio.ensure_future(asyncio.wait_for(detail, timeout)): "product detail response",
            asyncio.ensure_future(asyncio.wait_for(benefits, timeout)): "benefits response",
            asyncio.ensure_future(self._navigate(session, url)): "navigation",
        }
        pending = {blocked, *waiters}

        try:
            while True:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                failures = [
                    (t, t.exception()) for t in done
                    if t is not blocked and not t.cancelled() and t.exception() is not None
                ]

                if blocked in done:
                    reason = blocked.result()
                    raise BlockedError(reason, f"Blocked while loading {url}: {reason.value}")
                if failures:
                    task, exc = failures[0]
                    raise self._classify_race_failure(waiters[task], exc) from exc
                if all(w.done() for w in waiters):
                    break
        finally:
            session.off_response(on_blocking)
            session.off_response(on_success)
            for fut in (blocked, *waiters):
                fut.cancel()

        detail_task, benefits_task, _ = waiters
        return detail_task.result(), benefits_task.result()

    @staticmethod
    def _classify_race_failure(what: str, exc: BaseException) -> FetchError:
        if isinstance(exc, FetchError):
            return exc
        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            return TransientError(TransientCause.NETWORK_TIMEOUT, f"Timed out waiting for {what}")
        return TransientError(TransientCause.UNKNOWN, f"{what.capitalize()} failed: {exc}")

    async def _navigate(self, session, url: str):
        await random_delay(self.config.pre_navigation_delay_s, sleep=self._sleep)
        await session.move_pointer(self._rng.randint(100, 900), self._rng.randint(100, 700))
        await random_delay(self.config.post_pointer_delay_s, sleep=self._sleep)
        return await session.navigate(url, timeout_s=self.config.navigation_timeout_s)

    async def auto_scroll(self, session) -> int:
        """
        Scroll in fixed steps until the distance covered reaches the page's
        scroll height (re-read every step, pages grow as they lazy-load).
        Returns the distance scrolled.
        """
        step = self.config.scroll_step_px
        total = 0
        for _ in range(self.config.scroll_max_steps):
            height = await session.scroll_height()
            await session.scroll_by(step)
            total += step
            if total >= height:
                break
            await self._sleep(self.config.scroll_interval_s)
        return total

    @staticmethod
    async def _parse(response, name: str):
        try:
            data = await response.json()
        except ValueError as e:
            raise TransientError(TransientCause.UNKNOWN, f"{name} response is not valid JSON") from e
        if not data:
            raise TransientError(TransientCause.EMPTY_PAYLOAD, f"{name} data is empty")
        return data

    def _screenshot_path(self) -> Path:
        directory = Path(self.config.screenshot_dir)
        if not directory.is_absolute():
            directory = PROJECT_ROOT / directory
        return directory / f"error_screenshot_{int(time.time() * 1000)}.png"

    async def _capture_screenshot(self, session, log) -> None:
        try:
            await session.wait_for_network_idle(self.config.network_idle_timeout_s)
        except Exception as e:
            log.debug("network_idle_wait_skipped", error=str(e))

        path = self._screenshot_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await session.screenshot(path)
            log.info("screenshot_saved", path=str(path))
        except Exception as e:
            log.warning("screenshot_failed", error=str(e))
