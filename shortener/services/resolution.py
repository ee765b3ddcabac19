"""URL resolution service.

Composes the code generator, the resolution cache, the URL store and the
click pipeline. This is the only surface the web layer talks to.

Resolution order for a code:

1. ``url:{code}`` in Redis (a hit only saves the cache write-back).
2. ``get_active_by_code`` on the store, always; access decisions (active,
   expiry, secret) are never taken from the cache.
3. Secret check.
4. Click recording is handed to :class:`ClickDispatcher` and not awaited.

Mutations write the store first and then invalidate or refresh the cache
entry before returning, so the only stale window is a crash in between,
bounded by the entry TTL.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from ..cache import ResolutionCache
from ..errors import (
    AliasExistsError,
    CodeExistsError,
    GenerationExhaustedError,
    GoneError,
    InvalidURLError,
    NotFoundError,
    ShortenerError,
    UnauthorizedError,
)
from ..interfaces import URLStore
from ..models import ShortURL
from ..observability import REDIRECT_TOTAL, RESOLUTION_FAILURES, LINKS_EXPIRED
from ..schemas import ClickMetadata, LinkUpdate
from ..utils import ensure_utc, hash_secret, is_valid_destination, verify_secret
from .clicks import ClickDispatcher
from .codegen import CodeGenerator

logger = logging.getLogger(__name__)


class URLResolutionService:
    def __init__(
        self,
        urls: URLStore,
        cache: ResolutionCache,
        generator: CodeGenerator,
        dispatcher: ClickDispatcher,
        cache_ttl: int = 86400,
        cleanup_batch_size: int = 100,
        secret_hash_iterations: int = 100_000,
    ):
        self.urls = urls
        self.cache = cache
        self.generator = generator
        self.dispatcher = dispatcher
        self.cache_ttl = cache_ttl
        self.cleanup_batch_size = cleanup_batch_size
        self.secret_hash_iterations = secret_hash_iterations

    async def shorten(
        self,
        destination: str,
        owner: Optional[str],
        custom_alias: Optional[str] = None,
        secret: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> ShortURL:
        if not is_valid_destination(destination):
            raise InvalidURLError()

        secret_hash = hash_secret(secret, self.secret_hash_iterations) if secret else None
        expires_at = ensure_utc(expires_at)

        # Random codes can still lose the race to a concurrent insert after the
        # existence check; the unique index reports it and we draw again.
        for attempt in range(1, self.generator.max_attempts + 1):
            if custom_alias is not None:
                code = await self.generator.generate_custom(custom_alias)
            else:
                code = await self.generator.generate_random()

            record = ShortURL(
                code=code,
                destination=destination,
                owner=owner,
                custom_alias=custom_alias is not None,
                secret_hash=secret_hash,
                expires_at=expires_at,
                active=True,
                click_count=0,
            )
            try:
                record = await self.urls.create(record)
                break
            except CodeExistsError:
                if custom_alias is not None:
                    raise AliasExistsError()
                logger.info(f"Short code {code} taken at insert time, retrying ({attempt}/{self.generator.max_attempts})")
        else:
            raise GenerationExhaustedError()

        logger.info(f"Created short URL {record.code} for owner {owner}")
        await self.cache.put(record.code, record.destination, record.owner, self.cache_ttl, expires_at=record.expires_at)
        return record

    async def resolve(
        self,
        code: str,
        supplied_secret: Optional[str] = None,
        metadata: Optional[ClickMetadata] = None,
    ) -> str:
        cached = await self.cache.get(code)

        record = await self.urls.get_active_by_code(code)
        if record is None:
            if cached is not None:
                await self.cache.invalidate(code)
            await self._raise_unresolvable(code)

        if cached is None or cached.destination != record.destination or cached.owner != record.owner:
            await self.cache.put(record.code, record.destination, record.owner, self.cache_ttl, expires_at=record.expires_at)

        if record.secret_hash and not verify_secret(supplied_secret, record.secret_hash):
            RESOLUTION_FAILURES.labels(reason="unauthorized").inc()
            raise UnauthorizedError("Secret required")

        self.dispatcher.dispatch(record.id, metadata or ClickMetadata())
        REDIRECT_TOTAL.inc()
        return record.destination

    async def _raise_unresolvable(self, code: str):
        existing = await self.urls.get_by_code(code)
        if existing is None:
            RESOLUTION_FAILURES.labels(reason="not_found").inc()
            raise NotFoundError()
        RESOLUTION_FAILURES.labels(reason="gone").inc()
        raise GoneError()

    async def get_owned(self, record_id: uuid.UUID, owner: Optional[str]) -> ShortURL:
        record = await self.urls.get_by_id(record_id)
        if record is None:
            raise NotFoundError()
        if owner is None or record.owner != owner:
            raise UnauthorizedError("Not the owner of this link")
        return record

    async def list_owned(self, owner: Optional[str], offset: int = 0, limit: int = 20) -> tuple[list[ShortURL], int]:
        if owner is None:
            raise UnauthorizedError("Owner required")
        return await self.urls.list_by_owner(owner, offset=offset, limit=limit)

    async def update(self, record_id: uuid.UUID, owner: Optional[str], patch: LinkUpdate) -> ShortURL:
        record = await self.get_owned(record_id, owner)
        changes = patch.model_dump(exclude_unset=True)

        if changes.get("destination") is not None:
            if not is_valid_destination(changes["destination"]):
                raise InvalidURLError()
            record.destination = changes["destination"]
        if changes.get("active") is not None:
            record.active = changes["active"]
        if "expires_at" in changes:
            record.expires_at = ensure_utc(changes["expires_at"])

        record = await self.urls.update(record)

        if record.is_accessible():
            await self.cache.put(record.code, record.destination, record.owner, self.cache_ttl, expires_at=record.expires_at)
        else:
            await self.cache.invalidate(record.code)

        logger.info(f"Updated short URL {record.code}")
        return record

    async def delete(self, record_id: uuid.UUID, owner: Optional[str], hard: bool = False):
        record = await self.get_owned(record_id, owner)
        if not await self.urls.delete(record.id, hard=hard):
            raise NotFoundError()
        await self.cache.invalidate(record.code)
        logger.info(f"Deleted short URL {record.code} (hard={hard})")

    async def cleanup_expired(self) -> int:
        expired = await self.urls.list_expired(self.cleanup_batch_size)
        deactivated = 0
        for record in expired:
            try:
                changed = await self.urls.deactivate(record.id)
            except ShortenerError as e:
                logger.error(f"Failed to deactivate expired URL {record.code}: {e}")
                continue
            if not changed:
                continue
            await self.cache.invalidate(record.code)
            deactivated += 1

        if deactivated:
            LINKS_EXPIRED.inc(deactivated)
            logger.info(f"Expired {deactivated} links.")
        return deactivated

    async def close(self):
        await self.dispatcher.drain()
