import asyncio
import random
from urllib.parse import urlparse, urlunparse

from .models import ParsedProductUrl

SMARTSTORE_HOST = "smartstore.naver.com"


async def random_delay(delay_range: tuple[float, float], sleep=asyncio.sleep) -> float:
    """Sleep for a uniformly random number of seconds within (min, max). Returns the delay."""
    low, high = delay_range
    delay = random.uniform(low, high) if high > low else max(low, 0.0)
    await sleep(delay)
    return delay


def normalize_url(url: str) -> str:
    """
    Canonical form of a product URL: lower-cased scheme and host, no query
    string or fragment, no trailing slash.
    """
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", "", ""))


def cache_key_for(url: str, prefix: str = "product:") -> str:
    return f"{prefix}{normalize_url(url)}"


def parse_smartstore_url(url: str) -> ParsedProductUrl | None:
    """
    Extract store name and product id from
    https://smartstore.naver.com/{store_name}/products/{product_id}.

    Returns None when the URL does not have that shape.
    """
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or parsed.hostname != SMARTSTORE_HOST:
        return None

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 3 or parts[1] != "products" or not parts[2].isdigit():
        return None

    return ParsedProductUrl(store_name=parts[0], product_id=parts[2])
