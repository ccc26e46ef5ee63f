import pytest
from aiohttp import test_utils

from fakes import PRODUCT_URL, InMemoryCache, make_config, make_proxies
from smartstore_fetcher.errors import TransientCause, TransientError
from smartstore_fetcher.fetcher import ProductFetcher
from smartstore_fetcher.limiter import AdmissionLimiter
from smartstore_fetcher.metrics import MetricsTracker
from smartstore_fetcher.models import ScrapedProduct
from smartstore_fetcher.proxies import ProxyRegistry
from smartstore_fetcher.retry import RetryController
from smartstore_fetcher.server import create_app


class StubRunner:
    def __init__(self, error=None):
        self.error = error

    async def run(self, url, proxy=None, attempt=1):
        if self.error:
            raise self.error
        return ScrapedProduct(product_detail={"id": 11102379008}, benefits={"coupons": []})


def make_app(runner=None):
    config = make_config(max_attempts=1)
    fetcher = ProductFetcher(
        cache=InMemoryCache(),
        limiter=AdmissionLimiter(reservoir=10),
        retry=RetryController(ProxyRegistry(make_proxies(2)), config),
        runner=runner or StubRunner(),
        metrics=MetricsTracker(),
        config=config,
    )
    return create_app(fetcher)


@pytest.mark.asyncio
async def test_health():
    async with test_utils.TestClient(test_utils.TestServer(make_app())) as client:
        resp = await client.get("/health")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_product_url_is_400():
    async with test_utils.TestClient(test_utils.TestServer(make_app())) as client:
        resp = await client.get("/naver")
        body = await resp.json()
        assert resp.status == 400
        assert body["error"] == "Missing productUrl query parameter"


@pytest.mark.asyncio
async def test_invalid_product_url_is_400():
    async with test_utils.TestClient(test_utils.TestServer(make_app())) as client:
        resp = await client.get("/naver", params={"productUrl": "https://example.com/x"})
        assert resp.status == 400
        assert (await resp.json())["error"] == "Invalid productUrl format"


@pytest.mark.asyncio
async def test_product_is_returned_with_metadata():
    async with test_utils.TestClient(test_utils.TestServer(make_app())) as client:
        resp = await client.get("/naver", params={"productUrl": PRODUCT_URL})
        body = await resp.json()
        assert resp.status == 200
        assert body["productDetail"] == {"id": 11102379008}
        assert body["metadata"]["cached"] is False

        resp = await client.get("/naver", params={"productUrl": PRODUCT_URL})
        assert (await resp.json())["metadata"]["cached"] is True


@pytest.mark.asyncio
async def test_fetch_failure_is_500_with_message_and_classification():
    runner = StubRunner(TransientError(TransientCause.EMPTY_PAYLOAD, "Benefits data is empty"))
    async with test_utils.TestClient(test_utils.TestServer(make_app(runner))) as client:
        resp = await client.get("/naver", params={"productUrl": PRODUCT_URL})
        body = await resp.json()
        assert resp.status == 500
        assert body["message"] == "Benefits data is empty"
        assert body["classification"] == "EMPTY_PAYLOAD"
        assert body["productUrl"] == PRODUCT_URL


@pytest.mark.asyncio
async def test_metrics_route_reports_summary_and_proxies():
    async with test_utils.TestClient(test_utils.TestServer(make_app())) as client:
        await client.get("/naver", params={"productUrl": PRODUCT_URL})
        resp = await client.get("/metrics", params={"window": "5"})
        body = await resp.json()
        assert resp.status == 200
        assert body["summary"]["total_requests"] == 1
        assert len(body["proxies"]) == 2
        assert body["limiter"]["running"] == 0


@pytest.mark.asyncio
async def test_unknown_route_is_json_404():
    async with test_utils.TestClient(test_utils.TestServer(make_app())) as client:
        resp = await client.get("/nope")
        assert resp.status == 404
        assert await resp.json() == {"error": "Not found"}
