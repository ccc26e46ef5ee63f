import time
from datetime import datetime, timezone

import structlog
from aiohttp import web

from .browser import PlaywrightEngine
from .cache import RedisCache
from .errors import classification_of
from .fetcher import ProductFetcher
from .fingerprints import FingerprintRotator
from .limiter import AdmissionLimiter
from .metrics import MetricsTracker
from .proxies import ProxyRegistry
from .retry import RetryController
from .runner import SessionRunner
from .settings import FetcherConfig, load_proxies
from .utils import parse_smartstore_url

logger = structlog.get_logger(__name__)

FETCHER = web.AppKey("fetcher", ProductFetcher)
STARTED_AT = web.AppKey("started_at", float)

EXAMPLE_URL = "https://smartstore.naver.com/rainbows9030/products/11102379008"


def build_fetcher(config: FetcherConfig, engine, cache) -> ProductFetcher:
    """Wire every component explicitly; they live as long as the fetcher does."""
    registry = ProxyRegistry.from_config(load_proxies(config), config)
    return ProductFetcher(
        cache=cache,
        limiter=AdmissionLimiter.from_config(config),
        retry=RetryController(registry, config),
        runner=SessionRunner(engine, config, FingerprintRotator()),
        metrics=MetricsTracker(capacity=config.metrics_capacity),
        config=config,
    )


async def health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "ok",
        "uptime": round(time.time() - request.app[STARTED_AT], 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


async def naver_product(request: web.Request) -> web.Response:
    product_url = request.query.get("productUrl", "").strip()

    if not product_url:
        return web.json_response(
            {"error": "Missing productUrl query parameter", "example": f"?productUrl={EXAMPLE_URL}"},
            status=400,
        )

    parsed = parse_smartstore_url(product_url)
    if parsed is None:
        return web.json_response(
            {
                "error": "Invalid productUrl format",
                "expected": "https://smartstore.naver.com/{store_name}/products/{product_id}",
            },
            status=400,
        )

    logger.debug("product_request", store=parsed.store_name, product_id=parsed.product_id)
    try:
        result = await request.app[FETCHER].fetch(product_url)
    except Exception as e:
        logger.error("product_request_failed", product_url=product_url, error=str(e))
        return web.json_response(
            {
                "error": "Failed to fetch product data",
                "message": str(e),
                "classification": classification_of(e),
                "productUrl": product_url,
            },
            status=500,
        )

    return web.Response(text=result.to_json(), content_type="application/json")


async def metrics(request: web.Request) -> web.Response:
    try:
        window = float(request.query.get("window", 60))
    except ValueError:
        return web.json_response({"error": "window must be a number of minutes"}, status=400)

    fetcher = request.app[FETCHER]
    return web.json_response({
        "summary": fetcher.metrics.summary(window),
        "top_errors": fetcher.metrics.top_errors(),
        "proxies": fetcher.retry.registry.stats(),
        "limiter": fetcher.limiter.counts(),
    })


@web.middleware
async def json_not_found(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response({"error": "Not found"}, status=404)


def create_app(fetcher: ProductFetcher | None = None) -> web.Application:
    app = web.Application(middlewares=[json_not_found])
    app[STARTED_AT] = time.time()
    if fetcher is not None:
        app[FETCHER] = fetcher

    app.router.add_get("/health", health)
    app.router.add_get("/naver", naver_product)
    app.router.add_get("/metrics", metrics)
    return app


def build_application(config: FetcherConfig) -> web.Application:
    """
    Application with the browser engine and Redis cache bound to its lifetime:
    both start before the first request and are closed on shutdown.
    """
    app = create_app()

    async def components(app: web.Application):
        async with PlaywrightEngine(config) as engine:
            cache = RedisCache.from_url(config.redis_url)
            app[FETCHER] = build_fetcher(config, engine, cache)
            logger.info("server_ready", host=config.host, port=config.port)
            try:
                yield
            finally:
                await cache.close()
                logger.info("server_stopped")

    app.cleanup_ctx.append(components)
    return app
