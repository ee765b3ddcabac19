import uuid
from typing import AsyncGenerator, Optional

import pytest
import redis
from sqlalchemy.pool import StaticPool

from shortener.cache import ResolutionCache
from shortener.database import create_engine, create_sessionmaker, create_tables
from shortener.errors import CodeExistsError, NotFoundError
from shortener.models import ShortURL, Click
from shortener.redis import RedisClient
from shortener.services.clicks import ClickDispatcher, ClickRecorder
from shortener.services.codegen import CodeGenerator
from shortener.services.enrichment import UserAgentEnricher
from shortener.services.resolution import URLResolutionService
from shortener.utils import utc_now


class FakeRedis:
    """The slice of redis.asyncio.Redis that RedisClient uses, kept in memory."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.sets: dict[str, set] = {}
        self.ttls: dict[str, Optional[int]] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.exceptions.ConnectionError("redis is down")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.values[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.sets.pop(key, None) is not None)
        return removed

    async def sadd(self, key, *members):
        self._check()
        members_set = self.sets.setdefault(key, set())
        before = len(members_set)
        members_set.update(members)
        return len(members_set) - before

    async def scard(self, key):
        self._check()
        return len(self.sets.get(key, ()))

    async def expire(self, key, seconds):
        self._check()
        self.ttls[key] = seconds
        return True

    async def aclose(self):
        pass


def _copy(record: ShortURL) -> ShortURL:
    return ShortURL(**{column.key: getattr(record, column.key) for column in ShortURL.__table__.columns})


class InMemoryURLStore:
    """URL store double with the same uniqueness and tombstone rules as the SQL adapter.

    Records are copied in and out so callers cannot mutate stored state
    without going through ``update``.
    """

    def __init__(self):
        self.rows: dict[uuid.UUID, ShortURL] = {}

    def _live(self):
        return [r for r in self.rows.values() if r.deleted_at is None]

    async def create(self, record: ShortURL) -> ShortURL:
        if any(r.code == record.code for r in self._live()):
            raise CodeExistsError()
        stored = _copy(record)
        stored.id = stored.id or uuid.uuid4()
        stored.active = True if stored.active is None else stored.active
        stored.click_count = stored.click_count or 0
        stored.custom_alias = bool(stored.custom_alias)
        stored.created_at = stored.updated_at = utc_now()
        self.rows[stored.id] = stored
        return _copy(stored)

    async def get_by_id(self, record_id, include_deleted=False):
        record = self.rows.get(record_id)
        if record is None or (record.deleted_at is not None and not include_deleted):
            return None
        return _copy(record)

    async def get_by_code(self, code, include_deleted=False):
        candidates = self.rows.values() if include_deleted else self._live()
        for record in sorted(candidates, key=lambda r: r.deleted_at is not None):
            if record.code == code:
                return _copy(record)
        return None

    async def get_active_by_code(self, code):
        for record in self._live():
            if record.code == code and record.is_accessible():
                return _copy(record)
        return None

    async def update(self, record: ShortURL) -> ShortURL:
        current = self.rows.get(record.id)
        if current is None or current.deleted_at is not None:
            raise NotFoundError()
        if any(r.code == record.code and r.id != record.id for r in self._live()):
            raise CodeExistsError()
        stored = _copy(record)
        stored.deleted_at = None
        stored.click_count = current.click_count
        stored.created_at = current.created_at
        stored.updated_at = utc_now()
        self.rows[record.id] = stored
        return _copy(stored)

    async def deactivate(self, record_id):
        record = self.rows.get(record_id)
        if record is None or record.deleted_at is not None or not record.active:
            return False
        record.active = False
        record.updated_at = utc_now()
        return True

    async def delete(self, record_id, hard=False):
        record = self.rows.get(record_id)
        if record is None:
            return False
        if hard:
            del self.rows[record_id]
            return True
        if record.deleted_at is not None:
            return False
        record.deleted_at = utc_now()
        record.active = False
        return True

    async def increment_click_count(self, record_id):
        if record_id in self.rows:
            self.rows[record_id].click_count += 1

    async def list_expired(self, limit):
        expired = [r for r in self._live() if r.active and r.is_expired()]
        return [_copy(r) for r in expired[:limit]]

    async def list_by_owner(self, owner, offset=0, limit=20):
        owned = sorted(
            (r for r in self._live() if r.owner == owner),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return [_copy(r) for r in owned[offset:offset + limit]], len(owned)

    async def exists_by_code(self, code):
        return any(r.code == code for r in self._live())


class InMemoryClickStore:
    def __init__(self):
        self.clicks: list[Click] = []

    async def create(self, click: Click) -> Click:
        click.id = click.id or uuid.uuid4()
        click.clicked_at = click.clicked_at or utc_now()
        self.clicks.append(click)
        return click

    async def count_for(self, short_url_id) -> int:
        return sum(1 for c in self.clicks if c.short_url_id == short_url_id)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()

@pytest.fixture
def redis_client(fake_redis) -> RedisClient:
    client = RedisClient("redis://test", timeout=0.5)
    client.client = fake_redis
    return client

@pytest.fixture
def url_store() -> InMemoryURLStore:
    return InMemoryURLStore()

@pytest.fixture
def click_store() -> InMemoryClickStore:
    return InMemoryClickStore()

@pytest.fixture
def recorder(click_store, url_store, redis_client) -> ClickRecorder:
    return ClickRecorder(click_store, url_store, redis_client, enricher=UserAgentEnricher())

@pytest.fixture
def service(url_store, redis_client, recorder) -> URLResolutionService:
    return URLResolutionService(
        urls=url_store,
        cache=ResolutionCache(redis_client),
        generator=CodeGenerator(url_store),
        dispatcher=ClickDispatcher(recorder),
        secret_hash_iterations=1000,
    )

@pytest.fixture
async def sessionmaker() -> AsyncGenerator:
    engine = create_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield create_sessionmaker(engine)
    await engine.dispose()
