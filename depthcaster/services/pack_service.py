"""
depthcaster.services.pack_service — Curator packs
==================================================

A pack is a named, shareable list of curator FIDs.  Subscribing to a pack
adds its curators to the subscriber's pack feed
(:func:`depthcaster.services.feed_service.get_pack_feed`); each new
subscription bumps ``usage_count``, which drives the popular list.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from depthcaster.database.engine import get_session
from depthcaster.database.models import (
    CuratorPack,
    CuratorPackUser,
    PackFavorite,
    UserPackSubscription,
)
from depthcaster.errors import NotFoundError, PermissionDenied, ValidationError
from depthcaster.services.user_service import ensure_user

logger = logging.getLogger(__name__)


def serialize_pack(pack: CuratorPack) -> dict[str, Any]:
    return {
        "id": pack.id,
        "name": pack.name,
        "description": pack.description,
        "creator_fid": pack.creator_fid,
        "is_public": pack.is_public,
        "usage_count": pack.usage_count,
        "user_fids": [m.user_fid for m in pack.members],
        "created_at": pack.created_at.isoformat(),
    }


def _load(session: Session, pack_id: int) -> CuratorPack:
    pack = session.get(CuratorPack, pack_id, options=[selectinload(CuratorPack.members)])
    if pack is None:
        raise NotFoundError(f"Pack {pack_id} not found")
    return pack


def _visible(pack: CuratorPack, viewer_fid: int | None) -> bool:
    return pack.is_public or (viewer_fid is not None and pack.creator_fid == viewer_fid)


def _set_members(session: Session, pack: CuratorPack, user_fids: list[int]) -> None:
    wanted = list(dict.fromkeys(int(f) for f in user_fids))
    for fid in wanted:
        ensure_user(session, fid)
    pack.members = [m for m in pack.members if m.user_fid in wanted]
    present = {m.user_fid for m in pack.members}
    for fid in wanted:
        if fid not in present:
            pack.members.append(CuratorPackUser(user_fid=fid))


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
def create_pack(
    engine,
    creator_fid: int,
    name: str,
    user_fids: list[int],
    *,
    description: str | None = None,
    is_public: bool = True,
) -> dict[str, Any]:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if not user_fids:
        raise ValidationError("A pack needs at least one curator")

    with get_session(engine) as session:
        ensure_user(session, creator_fid)
        pack = CuratorPack(
            name=name, description=description, creator_fid=creator_fid, is_public=is_public
        )
        session.add(pack)
        _set_members(session, pack, user_fids)
        session.flush()
        result = serialize_pack(pack)

    logger.info("Pack %d (%s) created by fid %d with %d curators",
                result["id"], name, creator_fid, len(result["user_fids"]))
    return result


def get_pack(engine, pack_id: int, viewer_fid: int | None = None) -> dict[str, Any]:
    with Session(engine) as session:
        pack = _load(session, pack_id)
        if not _visible(pack, viewer_fid):
            raise NotFoundError(f"Pack {pack_id} not found")
        return serialize_pack(pack)


def list_packs(
    engine,
    *,
    viewer_fid: int | None = None,
    creator_fid: int | None = None,
    search: str | None = None,
    exclude_creator_fid: int | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    stmt = select(CuratorPack).options(selectinload(CuratorPack.members))

    if viewer_fid is None:
        stmt = stmt.where(CuratorPack.is_public.is_(True))
    else:
        stmt = stmt.where(or_(CuratorPack.is_public.is_(True), CuratorPack.creator_fid == viewer_fid))
    if creator_fid is not None:
        stmt = stmt.where(CuratorPack.creator_fid == creator_fid)
    if exclude_creator_fid is not None:
        stmt = stmt.where(CuratorPack.creator_fid != exclude_creator_fid)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(CuratorPack.name.ilike(pattern), CuratorPack.description.ilike(pattern)))

    stmt = stmt.order_by(CuratorPack.created_at.desc(), CuratorPack.id.desc()).limit(limit)
    with Session(engine) as session:
        return [serialize_pack(p) for p in session.scalars(stmt)]


def update_pack(engine, pack_id: int, editor_fid: int, **changes: Any) -> dict[str, Any]:
    """Creator-only edit of name / description / visibility / curators."""
    with get_session(engine) as session:
        pack = _load(session, pack_id)
        if pack.creator_fid != editor_fid:
            raise PermissionDenied("Only the pack creator can edit it")

        if changes.get("name") is not None:
            name = changes["name"].strip()
            if not name:
                raise ValidationError("name cannot be empty")
            pack.name = name
        if "description" in changes:
            pack.description = changes["description"]
        if changes.get("is_public") is not None:
            pack.is_public = bool(changes["is_public"])
        if changes.get("user_fids") is not None:
            if not changes["user_fids"]:
                raise ValidationError("A pack needs at least one curator")
            _set_members(session, pack, changes["user_fids"])
        session.flush()
        return serialize_pack(pack)


def delete_pack(engine, pack_id: int, editor_fid: int) -> None:
    with get_session(engine) as session:
        pack = _load(session, pack_id)
        if pack.creator_fid != editor_fid:
            raise PermissionDenied("Only the pack creator can delete it")
        session.delete(pack)
    logger.info("Pack %d deleted by fid %d", pack_id, editor_fid)


# ---------------------------------------------------------------------------
# Subscriptions & favorites
# ---------------------------------------------------------------------------
def subscribe(engine, user_fid: int, pack_id: int) -> bool:
    """Subscribe; returns False if already subscribed."""
    with get_session(engine) as session:
        pack = _load(session, pack_id)
        if not _visible(pack, user_fid):
            raise NotFoundError(f"Pack {pack_id} not found")
        existing = session.scalar(
            select(UserPackSubscription.id).where(
                UserPackSubscription.user_fid == user_fid,
                UserPackSubscription.pack_id == pack_id,
            )
        )
        if existing is not None:
            return False
        ensure_user(session, user_fid)
        session.add(UserPackSubscription(user_fid=user_fid, pack_id=pack_id))
        pack.usage_count = (pack.usage_count or 0) + 1
    return True


def unsubscribe(engine, user_fid: int, pack_id: int) -> bool:
    with get_session(engine) as session:
        row = session.scalar(
            select(UserPackSubscription).where(
                UserPackSubscription.user_fid == user_fid,
                UserPackSubscription.pack_id == pack_id,
            )
        )
        if row is None:
            return False
        session.delete(row)
    return True


def list_subscriptions(engine, user_fid: int) -> list[int]:
    with Session(engine) as session:
        return list(session.scalars(
            select(UserPackSubscription.pack_id).where(UserPackSubscription.user_fid == user_fid)
        ))


def favorite(engine, user_fid: int, pack_id: int) -> bool:
    with get_session(engine) as session:
        pack = _load(session, pack_id)
        if not _visible(pack, user_fid):
            raise NotFoundError(f"Pack {pack_id} not found")
        existing = session.scalar(
            select(PackFavorite.id).where(
                PackFavorite.user_fid == user_fid, PackFavorite.pack_id == pack_id
            )
        )
        if existing is not None:
            return False
        ensure_user(session, user_fid)
        session.add(PackFavorite(user_fid=user_fid, pack_id=pack_id))
    return True


def unfavorite(engine, user_fid: int, pack_id: int) -> bool:
    with get_session(engine) as session:
        row = session.scalar(
            select(PackFavorite).where(
                PackFavorite.user_fid == user_fid, PackFavorite.pack_id == pack_id
            )
        )
        if row is None:
            return False
        session.delete(row)
    return True


def list_favorites(engine, user_fid: int) -> list[dict[str, Any]]:
    stmt = (
        select(CuratorPack)
        .join(PackFavorite, PackFavorite.pack_id == CuratorPack.id)
        .where(PackFavorite.user_fid == user_fid)
        .options(selectinload(CuratorPack.members))
        .order_by(PackFavorite.created_at.desc(), PackFavorite.id.desc())
    )
    with Session(engine) as session:
        return [serialize_pack(p) for p in session.scalars(stmt)]


def popular_packs(engine, limit: int = 10) -> list[dict[str, Any]]:
    stmt = (
        select(CuratorPack)
        .where(CuratorPack.is_public.is_(True))
        .options(selectinload(CuratorPack.members))
        .order_by(CuratorPack.usage_count.desc(), CuratorPack.id.asc())
        .limit(limit)
    )
    with Session(engine) as session:
        return [serialize_pack(p) for p in session.scalars(stmt)]
