import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, Boolean, DateTime, BigInteger, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column
from .database import Base
from .utils import utc_now, ensure_utc

class ShortURL(Base):
    __tablename__ = "short_urls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    destination: Mapped[str] = mapped_column(Text, nullable=False)
    owner: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    custom_alias: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    secret_hash: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Codes only have to be unique among live rows; a tombstone frees its code.
        Index(
            "uq_short_urls_code_live",
            "code",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_short_urls_expires_at", "expires_at"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = ensure_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or utc_now())

    def is_accessible(self, now: Optional[datetime] = None) -> bool:
        return self.active and not self.is_deleted and not self.is_expired(now)

class Click(Base):
    __tablename__ = "clicks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    short_url_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("short_urls.id", ondelete="CASCADE"), index=True, nullable=False
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    country: Mapped[str] = mapped_column(String(100), default="unknown")
    region: Mapped[str] = mapped_column(String(100), default="unknown")
    city: Mapped[str] = mapped_column(String(100), default="unknown")
    device: Mapped[str] = mapped_column(String(50), default="unknown")
    browser: Mapped[str] = mapped_column(String(50), default="unknown")
    os: Mapped[str] = mapped_column(String(50), default="unknown")
    clicked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)

    __table_args__ = (
        Index("idx_clicks_short_url_id_clicked_at", "short_url_id", "clicked_at"),
    )
