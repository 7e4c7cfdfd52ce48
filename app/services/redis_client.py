# app/services/redis_client.py
"""
Pooled async Redis client.

Redis only holds short-lived OAuth sign-in state, so the surface is small:
write with a TTL and read-and-delete in one round trip. Operations log and
return a falsy value on failure; callers decide whether that is fatal.
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 10
SOCKET_TIMEOUT_SECONDS = 10


def _key_preview(key: str) -> str:
    return key[:30]


class FastRedisClient:
    def __init__(self):
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None

    @property
    def initialized(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        if self.initialized:
            return

        redis_url = settings.redis_url()
        if not redis_url:
            raise RuntimeError("Redis is not configured (set REDIS_URL or UPSTASH_REDIS_*)")

        pool = ConnectionPool.from_url(
            redis_url,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)
        try:
            await client.ping()
        except RedisError as e:
            logger.error("Redis connection failed", error=str(e))
            await pool.disconnect()
            raise RuntimeError("Redis initialization failed") from e

        self.pool, self.client = pool, client
        logger.info("Redis client initialized", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        if not self.initialized:
            return
        client, pool = self.client, self.pool
        self.client = self.pool = None
        await client.aclose()
        await pool.disconnect()
        logger.info("Redis client closed")

    async def _client(self) -> redis.Redis:
        if not self.initialized:
            logger.warning("Redis used before startup, connecting lazily")
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        try:
            return bool(await (await self._client()).ping())
        except (RedisError, RuntimeError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def set_with_ttl(self, key: str, value: str, ttl_s: int) -> bool:
        try:
            return bool(await (await self._client()).set(key, value, ex=ttl_s))
        except (RedisError, RuntimeError) as e:
            logger.error("Redis SET failed", key=_key_preview(key), error=str(e))
            return False

    async def getdel(self, key: str) -> str | None:
        """Return the value and remove the key atomically (single use)."""
        try:
            return await (await self._client()).getdel(key)
        except (RedisError, RuntimeError) as e:
            logger.error("Redis GETDEL failed", key=_key_preview(key), error=str(e))
            return None


# Global instance
fast_redis = FastRedisClient()
