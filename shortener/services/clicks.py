import asyncio
import logging
import uuid
from typing import Optional

from ..interfaces import ClickEnricher, ClickStore, URLStore
from ..models import Click
from ..observability import CLICKS_RECORDED, CLICK_FAILURES
from ..redis import RedisClient
from ..schemas import ClickMetadata

logger = logging.getLogger(__name__)

def unique_clicks_key(short_url_id: uuid.UUID) -> str:
    return f"unique_clicks:{short_url_id}"

class ClickRecorder:
    """Persists click events and keeps the approximate unique-visitor sets.

    Unique visitors live only in Redis with a TTL, so eviction, expiry or a
    flush resets the baseline and under-counts. That is accepted.
    """

    def __init__(
        self,
        clicks: ClickStore,
        urls: URLStore,
        redis_client: RedisClient,
        enricher: Optional[ClickEnricher] = None,
        unique_ttl: int = 86400,
    ):
        self.clicks = clicks
        self.urls = urls
        self.redis = redis_client
        self.enricher = enricher
        self.unique_ttl = unique_ttl

    async def record(self, short_url_id: uuid.UUID, metadata: ClickMetadata) -> Click:
        if self.enricher is not None:
            try:
                metadata = await self.enricher.enrich(metadata)
            except Exception as e:
                # Enrichment is best-effort; the raw click is still worth keeping.
                logger.warning(f"Click enrichment failed for {short_url_id}: {e}")

        click = Click(short_url_id=short_url_id, **metadata.model_dump())
        click = await self.clicks.create(click)
        await self.urls.increment_click_count(short_url_id)
        CLICKS_RECORDED.inc()
        return click

    async def mark_unique_if_new(self, short_url_id: uuid.UUID, ip_address: Optional[str]) -> bool:
        if not ip_address:
            return False
        return await self.redis.add_to_set(unique_clicks_key(short_url_id), ip_address, ex=self.unique_ttl)

    async def unique_count(self, short_url_id: uuid.UUID) -> int:
        return await self.redis.set_size(unique_clicks_key(short_url_id))

class ClickDispatcher:
    """Runs click recording off the redirect path.

    Tasks are tracked until they finish so shutdown can drain them; a failed
    task is logged and counted, never retried.
    """

    def __init__(self, recorder: ClickRecorder):
        self.recorder = recorder
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, short_url_id: uuid.UUID, metadata: ClickMetadata) -> asyncio.Task:
        task = asyncio.create_task(self._run(short_url_id, metadata))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, short_url_id: uuid.UUID, metadata: ClickMetadata):
        try:
            await self.recorder.record(short_url_id, metadata)
        except Exception as e:
            CLICK_FAILURES.inc()
            logger.error(f"Failed to record click for {short_url_id}: {e}")
            return

        try:
            await self.recorder.mark_unique_if_new(short_url_id, metadata.ip_address)
        except Exception as e:
            logger.warning(f"Failed to track unique click for {short_url_id}: {e}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
