import json
from datetime import timedelta

from shortener.cache import ResolutionCache
from shortener.utils import utc_now


async def test_put_then_get(redis_client, fake_redis):
    cache = ResolutionCache(redis_client, ttl=3600)
    await cache.put("abc123", "https://example.com", "owner-1")

    entry = await cache.get("abc123")
    assert entry.destination == "https://example.com"
    assert entry.owner == "owner-1"
    assert fake_redis.ttls["url:abc123"] == 3600
    assert set(json.loads(fake_redis.values["url:abc123"])) == {"destination", "owner", "cached_at"}


async def test_put_overwrites(redis_client):
    cache = ResolutionCache(redis_client)
    await cache.put("abc123", "https://old.example.com", None)
    await cache.put("abc123", "https://new.example.com", None)
    assert (await cache.get("abc123")).destination == "https://new.example.com"


async def test_ttl_clamped_to_expiry(redis_client, fake_redis):
    cache = ResolutionCache(redis_client, ttl=86400)
    await cache.put("soon", "https://example.com", None, expires_at=utc_now() + timedelta(minutes=10))
    assert 0 < fake_redis.ttls["url:soon"] <= 600


async def test_expired_link_not_cached(redis_client, fake_redis):
    cache = ResolutionCache(redis_client)
    await cache.put("old", "https://example.com", None, expires_at=utc_now() - timedelta(hours=1))
    assert "url:old" not in fake_redis.values


async def test_miss_and_invalidate(redis_client):
    cache = ResolutionCache(redis_client)
    assert await cache.get("nope") is None

    await cache.put("abc123", "https://example.com", None)
    await cache.invalidate("abc123")
    assert await cache.get("abc123") is None


async def test_malformed_entry_is_a_miss(redis_client, fake_redis):
    fake_redis.values["url:bad"] = "not json"
    cache = ResolutionCache(redis_client)
    assert await cache.get("bad") is None
    assert "url:bad" not in fake_redis.values


async def test_transport_errors_degrade_to_miss(redis_client, fake_redis):
    cache = ResolutionCache(redis_client)
    await cache.put("abc123", "https://example.com", None)
    fake_redis.fail = True

    assert await cache.get("abc123") is None
    # Neither of these may raise.
    await cache.put("abc123", "https://example.com", None)
    await cache.invalidate("abc123")


async def test_disconnected_client_is_a_miss():
    from shortener.redis import RedisClient

    cache = ResolutionCache(RedisClient("redis://unused"))
    await cache.put("abc123", "https://example.com", None)
    assert await cache.get("abc123") is None
