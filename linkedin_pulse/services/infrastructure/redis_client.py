# linkedin_pulse/services/infrastructure/redis_client.py
"""
Async Redis client for session storage.

Plain reads and writes degrade to a falsy result when Redis is unreachable
(the session store treats that as "no session" or "not stored"). Set reads
raise instead, because an empty index and an unreadable one mean different
things to the caller.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 20
SOCKET_TIMEOUT_SECONDS = 10


class RedisOperationError(Exception):
    """Raised by operations whose callers must tell "empty" apart from "unavailable"."""

    pass


class FastRedisClient:
    """Pooled async Redis client backing the session store."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.client: redis.Redis | None = None

    async def initialize(self):
        """Connect and ping; called from the API lifespan."""
        if self.client is not None:
            return

        redis_url = self.url or settings.REDIS_URL
        client = redis.Redis.from_url(
            redis_url,
            max_connections=MAX_CONNECTIONS,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.error(
                "Redis connection failed", host=redis_url.split("@")[-1][:30], error=str(e)
            )
            raise RuntimeError("Redis initialization failed") from e

        self.client = client
        logger.info("Redis client initialized", max_connections=MAX_CONNECTIONS)

    async def close(self):
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.aclose()
        logger.info("Redis client closed")

    async def _run(
        self,
        command: str,
        key: str,
        call: Callable[[redis.Redis], Awaitable[Any]],
        default: Any,
    ) -> Any:
        """Run ``call`` against the client, logging and returning ``default`` on failure."""
        try:
            if self.client is None:
                await self.initialize()
            return await call(self.client)
        except (RedisError, RuntimeError) as e:
            logger.error(f"Redis {command} failed", key=key[:30], error=str(e))
            return default

    async def ping(self) -> bool:
        return bool(await self._run("PING", "", lambda c: c.ping(), False))

    async def get(self, key: str) -> str | None:
        return await self._run("GET", key, lambda c: c.get(key), None) or None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """SET with an optional expiry in seconds."""
        return bool(await self._run("SET", key, lambda c: c.set(key, value, ex=ttl_s), False))

    async def delete(self, key: str) -> bool:
        return (await self._run("DEL", key, lambda c: c.delete(key), 0)) > 0

    async def set_add(self, key: str, member: str, ttl_s: int | None = None) -> bool:
        """SADD, refreshing the set's expiry in the same transaction."""

        async def add(client: redis.Redis):
            async with client.pipeline(transaction=True) as pipe:
                pipe.sadd(key, member)
                if ttl_s:
                    pipe.expire(key, ttl_s)
                return await pipe.execute()

        return bool(await self._run("SADD", key, add, None))

    async def set_remove(self, key: str, member: str) -> bool:
        return (await self._run("SREM", key, lambda c: c.srem(key, member), 0)) > 0

    async def set_members(self, key: str) -> set[str]:
        """
        All members of a set.

        Raises:
            RedisOperationError: If Redis cannot be reached
        """
        try:
            if self.client is None:
                await self.initialize()
            members = await self.client.smembers(key)
        except (RedisError, RuntimeError) as e:
            logger.error("Redis SMEMBERS failed", key=key[:30], error=str(e))
            raise RedisOperationError(f"SMEMBERS failed for {key[:30]}") from e
        return {str(member) for member in members}


# Global instance
fast_redis = FastRedisClient()
