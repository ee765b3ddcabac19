import asyncio
import functools
import logging
import uuid
from typing import Optional

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import CodeExistsError, NotFoundError, StoreUnavailableError
from .models import ShortURL, Click
from .utils import utc_now

logger = logging.getLogger(__name__)

def guarded(method):
    """Run a store call under the adapter's deadline and translate driver errors."""
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            async with asyncio.timeout(self.timeout):
                return await method(self, *args, **kwargs)
        except TimeoutError as e:
            logger.error(f"Store call {method.__name__} timed out after {self.timeout}s")
            raise StoreUnavailableError(f"{method.__name__} timed out") from e
        except IntegrityError as e:
            if self.integrity_error is CodeExistsError:
                raise CodeExistsError() from e
            logger.error(f"Store call {method.__name__} violated a constraint: {e}")
            raise StoreUnavailableError(f"{method.__name__} violated a constraint") from e
        except SQLAlchemyError as e:
            logger.error(f"Store call {method.__name__} failed: {e}")
            raise StoreUnavailableError(f"{method.__name__} failed") from e
    return wrapper

class SQLURLStore:
    integrity_error = CodeExistsError

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], timeout: float = 2.0):
        self.sessionmaker = sessionmaker
        self.timeout = timeout

    @guarded
    async def create(self, record: ShortURL) -> ShortURL:
        async with self.sessionmaker() as db:
            db.add(record)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise
            await db.refresh(record)
            return record

    @guarded
    async def get_by_id(self, record_id: uuid.UUID, include_deleted: bool = False) -> Optional[ShortURL]:
        stmt = select(ShortURL).where(ShortURL.id == record_id)
        if not include_deleted:
            stmt = stmt.where(ShortURL.deleted_at.is_(None))
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    @guarded
    async def get_by_code(self, code: str, include_deleted: bool = False) -> Optional[ShortURL]:
        stmt = select(ShortURL).where(ShortURL.code == code)
        if include_deleted:
            # Tombstones may share a code with a live row; prefer the live one.
            stmt = stmt.order_by(ShortURL.deleted_at.is_not(None), ShortURL.created_at.desc()).limit(1)
        else:
            stmt = stmt.where(ShortURL.deleted_at.is_(None))
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            return result.scalars().first()

    @guarded
    async def get_active_by_code(self, code: str) -> Optional[ShortURL]:
        stmt = select(ShortURL).where(
            ShortURL.code == code,
            ShortURL.deleted_at.is_(None),
            ShortURL.active.is_(True),
            or_(ShortURL.expires_at.is_(None), ShortURL.expires_at > utc_now()),
        )
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    @guarded
    async def update(self, record: ShortURL) -> ShortURL:
        record.updated_at = utc_now()
        stmt = (
            update(ShortURL)
            .where(ShortURL.id == record.id, ShortURL.deleted_at.is_(None))
            .values(
                code=record.code,
                destination=record.destination,
                owner=record.owner,
                secret_hash=record.secret_hash,
                expires_at=record.expires_at,
                active=record.active,
                updated_at=record.updated_at,
            )
        )
        async with self.sessionmaker() as db:
            try:
                result = await db.execute(stmt)
                updated = result.rowcount
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise
        if updated == 0:
            raise NotFoundError()
        return record

    @guarded
    async def deactivate(self, record_id: uuid.UUID) -> bool:
        now = utc_now()
        stmt = (
            update(ShortURL)
            .where(ShortURL.id == record_id, ShortURL.deleted_at.is_(None), ShortURL.active.is_(True))
            .values(active=False, updated_at=now)
        )
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            updated = result.rowcount
            await db.commit()
            return updated > 0

    @guarded
    async def delete(self, record_id: uuid.UUID, hard: bool = False) -> bool:
        if hard:
            stmt = delete(ShortURL).where(ShortURL.id == record_id)
        else:
            now = utc_now()
            stmt = (
                update(ShortURL)
                .where(ShortURL.id == record_id, ShortURL.deleted_at.is_(None))
                .values(deleted_at=now, active=False, updated_at=now)
            )
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            deleted = result.rowcount
            await db.commit()
            return deleted > 0

    @guarded
    async def increment_click_count(self, record_id: uuid.UUID) -> None:
        # Single UPDATE so concurrent clicks never lose an increment.
        async with self.sessionmaker() as db:
            await db.execute(
                update(ShortURL)
                .where(ShortURL.id == record_id)
                .values(click_count=ShortURL.click_count + 1)
            )
            await db.commit()

    @guarded
    async def list_expired(self, limit: int) -> list[ShortURL]:
        stmt = (
            select(ShortURL)
            .where(
                ShortURL.expires_at.is_not(None),
                ShortURL.expires_at <= utc_now(),
                ShortURL.active.is_(True),
                ShortURL.deleted_at.is_(None),
            )
            .order_by(ShortURL.expires_at)
            .limit(limit)
        )
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    @guarded
    async def list_by_owner(self, owner: str, offset: int = 0, limit: int = 20) -> tuple[list[ShortURL], int]:
        live = (ShortURL.owner == owner, ShortURL.deleted_at.is_(None))
        page = (
            select(ShortURL)
            .where(*live)
            .order_by(ShortURL.created_at.desc(), ShortURL.id)
            .offset(offset)
            .limit(limit)
        )
        total = select(func.count()).select_from(ShortURL).where(*live)
        async with self.sessionmaker() as db:
            links = list((await db.execute(page)).scalars().all())
            count = (await db.execute(total)).scalar_one()
            return links, count

    @guarded
    async def exists_by_code(self, code: str) -> bool:
        stmt = select(func.count()).select_from(ShortURL).where(
            ShortURL.code == code, ShortURL.deleted_at.is_(None)
        )
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            return result.scalar_one() > 0

class SQLClickStore:
    # A click can outlive its link when the link is hard-deleted first.
    integrity_error = StoreUnavailableError

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], timeout: float = 2.0):
        self.sessionmaker = sessionmaker
        self.timeout = timeout

    @guarded
    async def create(self, click: Click) -> Click:
        async with self.sessionmaker() as db:
            db.add(click)
            await db.commit()
            await db.refresh(click)
            return click

    @guarded
    async def count_for(self, short_url_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(Click).where(Click.short_url_id == short_url_id)
        async with self.sessionmaker() as db:
            result = await db.execute(stmt)
            return result.scalar_one()
