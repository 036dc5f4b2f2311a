"""
depthcaster.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- users                       — Farcaster profiles (FID primary key)
- user_roles                  — curator / admin / superadmin / plus grants
- curated_casts               — One row per curated cast, with extracted metadata
- curator_cast_curations      — Who curated what (unique per cast + curator)
- collections                 — Named, optionally gated cast lists
- collection_casts            — Collection membership with manual ordering
- curator_packs               — Shareable bundles of curator FIDs
- curator_pack_users          — Pack membership
- user_pack_subscriptions     — Feeds built from packs
- pack_favorites              — Bookmarked packs
- user_notifications          — In-app notifications for curators
- miniapp_installations       — Users who installed the Farcaster miniapp
- miniapp_notification_queue  — Deferred daily/weekly push notifications
- cast_tags                   — Admin-assigned cast tags
- admin_rate_limit_events     — Sliding-window admin mutation log
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Depthcaster ORM models."""


# ---------------------------------------------------------------------------
# Users: one row per Farcaster account we have seen
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    fid: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    display_name: Mapped[str | None] = mapped_column(String(200), default=None)
    pfp_url: Mapped[str | None] = mapped_column(Text, default=None)
    signer_uuid: Mapped[str | None] = mapped_column(String(64), default=None)
    preferences: Mapped[dict | None] = mapped_column(JSONB, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    roles: Mapped[list[UserRole]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_username", "username"),
        Index("ix_users_signer_uuid", "signer_uuid"),
    )

    def __repr__(self) -> str:
        return f"<User fid={self.fid} username={self.username!r}>"


class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_fid: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.fid", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_fid", "role", name="uq_user_roles_user_role"),
        Index("ix_user_roles_user_fid", "user_fid"),
    )


# ---------------------------------------------------------------------------
# Curated casts
# ---------------------------------------------------------------------------
class CuratedCast(Base):
    """A cast that at least one curator has featured.

    ``created_at`` is the time of the *first* curation and is the sort key
    of every curated feed.  Commonly filtered fields are extracted from the
    JSONB payload on insert (see :mod:`depthcaster.engine.cast_metadata`).
    """
    __tablename__ = "curated_casts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cast_hash: Mapped[str] = mapped_column(String(66), nullable=False, unique=True)
    cast_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    cast_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    curator_fid: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.fid"), default=None
    )

    # Extracted metadata
    cast_text: Mapped[str | None] = mapped_column(Text, default=None)
    cast_text_length: Mapped[int] = mapped_column(Integer, default=0)
    author_fid: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.fid", ondelete="SET NULL"), default=None
    )
    likes_count: Mapped[int] = mapped_column(Integer, default=0)
    recasts_count: Mapped[int] = mapped_column(Integer, default=0)
    replies_count: Mapped[int] = mapped_column(Integer, default=0)
    engagement_score: Mapped[int] = mapped_column(Integer, default=0)
    parent_hash: Mapped[str | None] = mapped_column(String(66), default=None)

    # LLM quality analysis
    quality_score: Mapped[int | None] = mapped_column(Integer, default=None)
    category: Mapped[str | None] = mapped_column(String(40), default=None)
    quality_analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    curations: Mapped[list[CuratorCastCuration]] = relationship(
        back_populates="curated_cast", cascade="all, delete-orphan"
    )
    collection_entries: Mapped[list[CollectionCast]] = relationship(
        back_populates="curated_cast", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_curated_casts_created_at_id", "created_at", "id"),
        Index("ix_curated_casts_author_fid", "author_fid"),
        Index("ix_curated_casts_quality_category", "quality_score", "category"),
        Index("ix_curated_casts_parent_hash", "parent_hash"),
    )

    def __repr__(self) -> str:
        return f"<CuratedCast hash={self.cast_hash} quality={self.quality_score}>"


class CuratorCastCuration(Base):
    __tablename__ = "curator_cast_curations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cast_hash: Mapped[str] = mapped_column(
        String(66), ForeignKey("curated_casts.cast_hash", ondelete="CASCADE"), nullable=False
    )
    curator_fid: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.fid"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    curated_cast: Mapped[CuratedCast] = relationship(back_populates="curations")

    __table_args__ = (
        UniqueConstraint("cast_hash", "curator_fid", name="uq_curations_cast_curator"),
        Index("ix_curations_curator_created", "curator_fid", "created_at"),
    )


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
class Collection(Base):
    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(200), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    creator_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    access_type: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    gated_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.fid"), default=None
    )
    gating_rule: Mapped[dict | None] = mapped_column(JSONB, default=None)
    display_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    order_mode: Mapped[str] = mapped_column(String(10), nullable=False, default="manual")
    order_direction: Mapped[str] = mapped_column(String(4), nullable=False, default="desc")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    casts: Mapped[list[CollectionCast]] = relationship(
        back_populates="collection", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Collection name={self.name!r} access={self.access_type}>"


class CollectionCast(Base):
    __tablename__ = "collection_casts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    cast_hash: Mapped[str] = mapped_column(
        String(66), ForeignKey("curated_casts.cast_hash", ondelete="CASCADE"), nullable=False
    )
    curator_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    order: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    collection: Mapped[Collection] = relationship(back_populates="casts")
    curated_cast: Mapped[CuratedCast] = relationship(back_populates="collection_entries")

    __table_args__ = (
        UniqueConstraint("collection_id", "cast_hash", name="uq_collection_casts_collection_cast"),
        Index("ix_collection_casts_collection_order", "collection_id", "order"),
    )


# ---------------------------------------------------------------------------
# Curator packs
# ---------------------------------------------------------------------------
class CuratorPack(Base):
    __tablename__ = "curator_packs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    creator_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    members: Mapped[list[CuratorPackUser]] = relationship(
        back_populates="pack", cascade="all, delete-orphan"
    )
    subscriptions: Mapped[list[UserPackSubscription]] = relationship(
        cascade="all, delete-orphan"
    )
    favorites: Mapped[list[PackFavorite]] = relationship(
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_curator_packs_creator_fid", "creator_fid"),
    )


class CuratorPackUser(Base):
    __tablename__ = "curator_pack_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pack_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("curator_packs.id", ondelete="CASCADE"), nullable=False
    )
    user_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    pack: Mapped[CuratorPack] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("pack_id", "user_fid", name="uq_pack_users_pack_user"),
    )


class UserPackSubscription(Base):
    __tablename__ = "user_pack_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    pack_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("curator_packs.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_fid", "pack_id", name="uq_pack_subscriptions_user_pack"),
    )


class PackFavorite(Base):
    __tablename__ = "pack_favorites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    pack_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("curator_packs.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_fid", "pack_id", name="uq_pack_favorites_user_pack"),
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
class UserNotification(Base):
    __tablename__ = "user_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    cast_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    cast_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    author_fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_fid", "cast_hash", "type", name="uq_notifications_user_cast_type"),
        Index("ix_notifications_user_read_created", "user_fid", "is_read", "created_at"),
    )


class MiniappInstallation(Base):
    __tablename__ = "miniapp_installations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_fid: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.fid", ondelete="CASCADE"), nullable=False, unique=True
    )
    installed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )


class MiniappNotificationQueue(Base):
    """Deferred push for users who chose daily or weekly digests."""
    __tablename__ = "miniapp_notification_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_fid: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.fid", ondelete="CASCADE"), nullable=False
    )
    cast_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    cast_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    notification_type: Mapped[str] = mapped_column(
        String(40), nullable=False, default="new_curated_cast"
    )
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_miniapp_queue_user_scheduled", "user_fid", "scheduled_for"),
        Index("ix_miniapp_queue_sent_at", "sent_at"),
    )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
class CastTag(Base):
    __tablename__ = "cast_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cast_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    tag: Mapped[str] = mapped_column(String(50), nullable=False)
    admin_fid: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.fid"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("cast_hash", "tag", name="uq_cast_tags_cast_tag"),
        Index("ix_cast_tags_tag", "tag"),
    )


# ---------------------------------------------------------------------------
# AdminRateLimitEvent: durable per-admin mutation timestamps
# ---------------------------------------------------------------------------
class AdminRateLimitEvent(Base):
    __tablename__ = "admin_rate_limit_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    admin_fid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_rate_limit_events_fid_ts", "admin_fid", "timestamp"),
    )
