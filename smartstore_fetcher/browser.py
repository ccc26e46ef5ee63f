from pathlib import Path

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .fingerprints import Fingerprint
from .settings import FetcherConfig, Proxy

logger = structlog.get_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-gpu",
    "--disable-infobars",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]


def accept_language(languages: list[str]) -> str:
    """ko-KR,ko;q=0.8,en-US;q=0.7 style header from an ordered language list."""
    return ",".join(lang if i == 0 else f"{lang};q=0.{max(1, 9 - i)}" for i, lang in enumerate(languages))


class BrowserSession:
    """
    One page with its own browser and context, closed together.

    Playwright timeouts surface as the builtin TimeoutError so callers do
    not depend on Playwright's exception types.
    """

    def __init__(self, browser, context, page):
        self._browser = browser
        self._context = context
        self.page = page

    def on_response(self, listener) -> None:
        self.page.on("response", listener)

    def off_response(self, listener) -> None:
        self.page.remove_listener("response", listener)

    async def navigate(self, url: str, timeout_s: float):
        try:
            return await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_s * 1000)
        except PlaywrightTimeoutError as e:
            raise TimeoutError(f"Navigation timed out after {timeout_s}s: {url}") from e

    async def move_pointer(self, x: int, y: int) -> None:
        await self.page.mouse.move(x, y)

    async def scroll_height(self) -> int:
        return await self.page.evaluate("() => document.body.scrollHeight")

    async def scroll_by(self, distance: int) -> None:
        await self.page.evaluate("(d) => window.scrollBy(0, d)", distance)

    async def wait_for_network_idle(self, timeout_s: float) -> None:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_s * 1000)
        except PlaywrightTimeoutError as e:
            raise TimeoutError(f"Network did not settle within {timeout_s}s") from e

    async def screenshot(self, path: str | Path) -> None:
        await self.page.screenshot(path=str(path), full_page=True)

    async def close(self) -> None:
        try:
            await self.page.close()
        finally:
            try:
                await self._context.close()
            finally:
                await self._browser.close()


class PlaywrightEngine:
    """
    Chromium session factory using Playwright.

    - Single Playwright driver per context manager (__aenter__/__aexit__)
    - One browser launch per session, since the proxy is bound at launch
    - Context built from a fingerprint: user agent, viewport, locale, timezone
    - Optional heavy-resource blocking
    """

    def __init__(self, config: FetcherConfig):
        self.config = config
        self._playwright = None

    async def __aenter__(self):
        self._playwright = await async_playwright().start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def create_session(self, proxy: Proxy | None = None, fingerprint: Fingerprint | None = None) -> BrowserSession:
        if self._playwright is None:
            raise RuntimeError("PlaywrightEngine is not started; use it as an async context manager")

        launch_options = {"headless": self.config.browser_headless, "args": LAUNCH_ARGS}
        if self.config.chromium_executable_path:
            launch_options["executable_path"] = self.config.chromium_executable_path
        if proxy:
            launch_options["proxy"] = proxy.playwright_proxy()

        browser = await self._playwright.chromium.launch(**launch_options)
        logger.info("browser_launched", proxy=proxy.key if proxy else None)

        try:
            context_options = {
                "locale": fingerprint.locale if fingerprint else self.config.browser_languages[0],
                "timezone_id": fingerprint.timezone if fingerprint else self.config.browser_timezone,
                "extra_http_headers": {"accept-language": accept_language(self.config.browser_languages)},
                "ignore_https_errors": True,
                "service_workers": "block",
            }
            if fingerprint:
                width, height = fingerprint.viewport
                context_options["user_agent"] = fingerprint.user_agent
                context_options["viewport"] = {"width": width, "height": height}

            context = await browser.new_context(**context_options)

            if self.config.browser_block_heavy:
                async def route_handler(route):
                    if route.request.resource_type in {"image", "media", "font"}:
                        await route.abort()
                    else:
                        await route.continue_()
                await context.route("**/*", route_handler)

            page = await context.new_page()
        except Exception:
            await browser.close()
            raise

        return BrowserSession(browser, context, page)
