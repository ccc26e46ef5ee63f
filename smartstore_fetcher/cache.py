import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)


class RedisCache:
    """
    Thin get / set-with-expiry wrapper over an asyncio Redis client.

    Errors are raised to the caller; deciding that a cache failure is
    harmless is the fetcher's job, not the store's.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        logger.info("cache_connecting", url=url)
        return cls(redis.from_url(url))

    async def get(self, key: str) -> bytes | None:
        return await self._client.get(key)

    async def set_with_ttl(self, key: str, value: str | bytes, ttl_s: int) -> None:
        await self._client.set(key, value, ex=ttl_s)

    async def close(self) -> None:
        await self._client.aclose()
