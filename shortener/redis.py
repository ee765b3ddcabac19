import asyncio
import logging
import redis.asyncio as redis
from typing import Optional

logger = logging.getLogger(__name__)

class RedisClient:
    """Best-effort Redis access.

    Every call carries a deadline; transport errors and timeouts are logged and
    reported as a miss (``None``/``False``) so the cache can never fail a
    request on its own.
    """

    def __init__(self, url: Optional[str] = None, timeout: float = 0.25):
        self.url = url
        self.timeout = timeout
        self.client: Optional[redis.Redis] = None

    async def connect(self):
        self.client = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.timeout,
        )
        try:
            await self.client.ping()
        except (redis.RedisError, OSError) as e:
            # Keep the client; later calls degrade to misses until Redis is back.
            logger.warning(f"Redis ping failed on connect: {e}")

    async def close(self):
        if self.client:
            await self.client.aclose()

    async def _call(self, op: str, coro, default=None):
        try:
            async with asyncio.timeout(self.timeout):
                return await coro
        except (redis.RedisError, TimeoutError, OSError) as e:
            logger.warning(f"Redis {op} failed: {e!r}")
            return default

    async def get(self, key: str) -> Optional[str]:
        if not self.client:
            return None
        return await self._call("get", self.client.get(key))

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if not self.client:
            return False
        return bool(await self._call("set", self.client.set(key, value, ex=ex), default=False))

    async def delete(self, key: str) -> bool:
        if not self.client:
            return False
        return await self._call("delete", self.client.delete(key), default=None) is not None

    async def add_to_set(self, key: str, member: str, ex: Optional[int] = None) -> bool:
        """Add ``member`` to the set at ``key``; True only if it was not there yet."""
        if not self.client:
            return False
        added = await self._call("sadd", self.client.sadd(key, member), default=0)
        if added and ex:
            await self._call("expire", self.client.expire(key, ex))
        return bool(added)

    async def set_size(self, key: str) -> int:
        if not self.client:
            return 0
        return int(await self._call("scard", self.client.scard(key), default=0) or 0)
