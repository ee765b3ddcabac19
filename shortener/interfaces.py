"""Capabilities the resolution core depends on.

The SQLAlchemy adapters in ``crud`` implement the store protocols; tests swap
in in-memory doubles.
"""
import uuid
from typing import Optional, Protocol

from .models import Click, ShortURL
from .schemas import ClickMetadata


class URLStore(Protocol):
    async def create(self, record: ShortURL) -> ShortURL: ...

    async def get_by_id(self, record_id: uuid.UUID, include_deleted: bool = False) -> Optional[ShortURL]: ...

    async def get_by_code(self, code: str, include_deleted: bool = False) -> Optional[ShortURL]: ...

    async def get_active_by_code(self, code: str) -> Optional[ShortURL]: ...

    async def update(self, record: ShortURL) -> ShortURL: ...

    async def deactivate(self, record_id: uuid.UUID) -> bool: ...

    async def delete(self, record_id: uuid.UUID, hard: bool = False) -> bool: ...

    async def increment_click_count(self, record_id: uuid.UUID) -> None: ...

    async def list_expired(self, limit: int) -> list[ShortURL]: ...

    async def list_by_owner(self, owner: str, offset: int = 0, limit: int = 20) -> tuple[list[ShortURL], int]: ...

    async def exists_by_code(self, code: str) -> bool: ...


class ClickStore(Protocol):
    async def create(self, click: Click) -> Click: ...

    async def count_for(self, short_url_id: uuid.UUID) -> int: ...


class ClickEnricher(Protocol):
    async def enrich(self, metadata: ClickMetadata) -> ClickMetadata: ...
