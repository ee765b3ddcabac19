import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .observability import CACHE_HITS, CACHE_MISSES
from .redis import RedisClient
from .utils import utc_now, ensure_utc

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class CachedLink:
    destination: str
    owner: Optional[str]
    cached_at: int

def url_key(code: str) -> str:
    return f"url:{code}"

class ResolutionCache:
    """``url:{code}`` entries in front of the URL store.

    Entries are thin (destination and owner only) and never authoritative:
    liveness, expiry and secrets are always checked against the store.
    """

    def __init__(self, redis_client: RedisClient, ttl: int = 86400):
        self.redis = redis_client
        self.ttl = ttl

    async def put(
        self,
        code: str,
        destination: str,
        owner: Optional[str],
        ttl: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ):
        ttl = ttl or self.ttl
        expires_at = ensure_utc(expires_at)
        if expires_at is not None:
            # Never outlive the link itself.
            ttl = min(ttl, int((expires_at - utc_now()).total_seconds()))
        if ttl <= 0:
            return

        value = json.dumps({
            "destination": destination,
            "owner": owner,
            "cached_at": int(utc_now().timestamp()),
        })
        await self.redis.set(url_key(code), value, ex=ttl)

    async def get(self, code: str) -> Optional[CachedLink]:
        raw = await self.redis.get(url_key(code))
        if not raw:
            CACHE_MISSES.inc()
            return None

        try:
            data = json.loads(raw)
            entry = CachedLink(
                destination=data["destination"],
                owner=data.get("owner"),
                cached_at=int(data.get("cached_at", 0)),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning(f"Dropping malformed cache entry for {code}")
            await self.redis.delete(url_key(code))
            CACHE_MISSES.inc()
            return None

        CACHE_HITS.inc()
        return entry

    async def invalidate(self, code: str):
        await self.redis.delete(url_key(code))
