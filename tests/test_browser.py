import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from smartstore_fetcher.browser import BrowserSession, accept_language


class Closable:
    def __init__(self, log, name, error=None):
        self.log = log
        self.name = name
        self.error = error

    async def close(self):
        self.log.append(self.name)
        if self.error:
            raise self.error


class TimingOutPage(Closable):
    async def goto(self, url, wait_until, timeout):
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    async def wait_for_load_state(self, state, timeout):
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")


def test_accept_language_weights():
    assert accept_language(["ko-KR", "ko", "en-US"]) == "ko-KR,ko;q=0.8,en-US;q=0.7"


@pytest.mark.asyncio
async def test_session_close_closes_everything_even_if_page_close_fails():
    log = []
    session = BrowserSession(
        Closable(log, "browser"),
        Closable(log, "context"),
        Closable(log, "page", error=RuntimeError("Target closed")),
    )

    with pytest.raises(RuntimeError):
        await session.close()

    assert log == ["page", "context", "browser"]


@pytest.mark.asyncio
async def test_playwright_timeouts_surface_as_builtin_timeout():
    log = []
    session = BrowserSession(Closable(log, "browser"), Closable(log, "context"), TimingOutPage(log, "page"))

    with pytest.raises(TimeoutError):
        await session.navigate("https://smartstore.naver.com/s/products/1", timeout_s=1)
    with pytest.raises(TimeoutError):
        await session.wait_for_network_idle(0.5)
