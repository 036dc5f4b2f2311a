"""
depthcaster.services.collection_service — Named cast collections
=================================================================

Collections are admin-created lists of curated casts.  Who may add to (and
see) a collection is decided by :mod:`depthcaster.engine.gating`.

Ordering:
- ``manual`` collections are ordered by the ``order`` column (nulls last),
  which :func:`reorder_casts` rewrites as ``1..n``.
- ``auto`` collections are ordered by when each cast was added, in the
  collection's ``order_direction``.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from depthcaster.constants import ACCESS_TYPES, ALL_ROLES, DISPLAY_TYPES, ORDER_DIRECTIONS, ORDER_MODES
from depthcaster.database.engine import get_session
from depthcaster.database.models import Collection, CollectionCast, CuratedCast, CuratorCastCuration, User
from depthcaster.engine.gating import can_user_add_to_collection
from depthcaster.engine.pagination import (
    decode_offset_cursor,
    encode_offset_cursor,
    keyset_after,
    keyset_before,
    paginate,
)
from depthcaster.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from depthcaster.services.curation_service import find_curated_cast, insert_curated_cast
from depthcaster.services.user_service import ensure_user, is_admin, roles_for

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({
    "display_name",
    "description",
    "access_type",
    "gated_user_id",
    "gating_rule",
    "display_type",
    "order_mode",
    "order_direction",
})


def _validate_settings(
    access_type: str,
    display_type: str,
    order_mode: str,
    order_direction: str,
    gated_user_id: int | None,
    gating_rule: dict | None,
) -> None:
    if access_type not in ACCESS_TYPES:
        raise ValidationError(f"Invalid accessType: {access_type}")
    if display_type not in DISPLAY_TYPES:
        raise ValidationError(f"Invalid displayType: {display_type}")
    if order_mode not in ORDER_MODES:
        raise ValidationError(f"Invalid orderMode: {order_mode}")
    if order_direction not in ORDER_DIRECTIONS:
        raise ValidationError(f"Invalid orderDirection: {order_direction}")
    if access_type == "gated_user" and not gated_user_id:
        raise ValidationError("gatedUserId is required for gated_user collections")
    if access_type == "gated_rule":
        _validate_gating_rule(gating_rule)


def _validate_gating_rule(rule: Any) -> None:
    if not isinstance(rule, dict) or not rule.get("type"):
        raise ValidationError("gatingRule is required for gated_rule collections")
    rule_type = rule["type"]
    if rule_type == "display_name_contains_emoji":
        emoji = rule.get("emoji")
        if not isinstance(emoji, str) or not emoji:
            raise ValidationError("gatingRule.emoji must be a non-empty string")
    elif rule_type == "has_role":
        role = rule.get("role")
        if not isinstance(role, str) or role not in ALL_ROLES:
            raise ValidationError(f"gatingRule.role must be one of {sorted(ALL_ROLES)}")
    elif rule_type == "user_fid":
        fid = rule.get("fid")
        if isinstance(fid, bool) or not isinstance(fid, int) or fid <= 0:
            raise ValidationError("gatingRule.fid must be a positive integer")
    else:
        raise ValidationError(f"Unknown gatingRule type: {rule_type}")


def _load(session: Session, name: str) -> Collection:
    collection = session.scalar(select(Collection).where(Collection.name == name))
    if collection is None:
        raise NotFoundError(f"Collection {name!r} not found")
    return collection


def _check_access(session: Session, collection: Collection, user_fid: int) -> None:
    user = ensure_user(session, user_fid)
    if not can_user_add_to_collection(collection, user, roles_for(session, user_fid)):
        raise PermissionDenied("You don't have access to this collection")


def serialize_collection(collection: Collection) -> dict[str, Any]:
    return {
        "id": collection.id,
        "name": collection.name,
        "display_name": collection.display_name,
        "description": collection.description,
        "creator_fid": collection.creator_fid,
        "access_type": collection.access_type,
        "gated_user_id": collection.gated_user_id,
        "gating_rule": collection.gating_rule,
        "display_type": collection.display_type,
        "order_mode": collection.order_mode,
        "order_direction": collection.order_direction,
        "created_at": collection.created_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
def create_collection(
    engine,
    *,
    name: str,
    creator_fid: int,
    display_name: str | None = None,
    description: str | None = None,
    access_type: str = "open",
    gated_user_id: int | None = None,
    gating_rule: dict | None = None,
    display_type: str = "text",
    order_mode: str = "manual",
    order_direction: str = "desc",
) -> Collection:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    _validate_settings(access_type, display_type, order_mode, order_direction, gated_user_id, gating_rule)

    try:
        with get_session(engine) as session:
            if session.scalar(select(Collection.id).where(Collection.name == name)) is not None:
                raise ConflictError(f"Collection {name!r} already exists")
            ensure_user(session, creator_fid)
            if access_type == "gated_user":
                ensure_user(session, gated_user_id)
            collection = Collection(
                name=name,
                display_name=display_name,
                description=description,
                creator_fid=creator_fid,
                access_type=access_type,
                gated_user_id=gated_user_id if access_type == "gated_user" else None,
                gating_rule=gating_rule if access_type == "gated_rule" else None,
                display_type=display_type,
                order_mode=order_mode,
                order_direction=order_direction,
            )
            session.add(collection)
            session.flush()
    except IntegrityError as exc:
        raise ConflictError(f"Collection {name!r} already exists") from exc

    logger.info("Collection %s created by fid %d (%s)", name, creator_fid, access_type)
    return collection


def update_collection(engine, name: str, changes: dict[str, Any]) -> Collection:
    """Apply a partial settings update.  The merged settings are validated as a whole."""
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}")

    with get_session(engine) as session:
        collection = _load(session, name)
        for key, value in changes.items():
            setattr(collection, key, value)
        _validate_settings(
            collection.access_type,
            collection.display_type,
            collection.order_mode,
            collection.order_direction,
            collection.gated_user_id,
            collection.gating_rule,
        )
        if collection.access_type == "gated_user":
            ensure_user(session, collection.gated_user_id)
        else:
            collection.gated_user_id = None
        if collection.access_type != "gated_rule":
            collection.gating_rule = None
        session.flush()

    logger.info("Collection %s updated: %s", name, ", ".join(sorted(changes)))
    return collection


def delete_collection(engine, name: str) -> None:
    """Delete a collection and its entries.  The curated casts are kept."""
    with get_session(engine) as session:
        session.delete(_load(session, name))
    logger.info("Collection %s deleted", name)


def get_collection(engine, name: str) -> Collection:
    with Session(engine, expire_on_commit=False) as session:
        return _load(session, name)


def list_accessible_collections(engine, user_fid: int | None) -> list[Collection]:
    """Open collections for anonymous users; gating decides for the rest."""
    with Session(engine, expire_on_commit=False) as session:
        collections = session.scalars(select(Collection).order_by(Collection.name)).all()
        if user_fid is None:
            return [c for c in collections if c.access_type == "open"]

        roles = roles_for(session, user_fid)
        if is_admin(roles):
            return list(collections)
        user = session.get(User, user_fid)
        return [c for c in collections if can_user_add_to_collection(c, user, roles)]


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
def add_cast(
    engine,
    name: str,
    cast_hash: str,
    curator_fid: int,
    cast_data: dict[str, Any] | None = None,
) -> CollectionCast:
    """Add a cast to a collection, curating it first if needed."""
    with get_session(engine) as session:
        collection = _load(session, name)
        _check_access(session, collection, curator_fid)

        if find_curated_cast(session, cast_hash) is None:
            if not cast_data:
                raise ValidationError("castData is required to add an uncurated cast")
            insert_curated_cast(session, cast_hash, cast_data, curator_fid)
            session.add(CuratorCastCuration(cast_hash=cast_hash, curator_fid=curator_fid))

        exists = session.scalar(
            select(CollectionCast.id).where(
                CollectionCast.collection_id == collection.id,
                CollectionCast.cast_hash == cast_hash,
            )
        )
        if exists is not None:
            raise ConflictError("Cast is already in this collection")

        max_order = session.scalar(
            select(func.max(CollectionCast.order))
            .where(CollectionCast.collection_id == collection.id)
        ) or 0
        entry = CollectionCast(
            collection_id=collection.id,
            cast_hash=cast_hash,
            curator_fid=curator_fid,
            order=max_order + 1,
        )
        session.add(entry)
        session.flush()

    logger.info("Cast %s added to collection %s by fid %d", cast_hash, name, curator_fid)
    return entry


def remove_cast(engine, name: str, cast_hash: str, user_fid: int) -> None:
    with get_session(engine) as session:
        collection = _load(session, name)
        _check_access(session, collection, user_fid)
        entry = session.scalar(
            select(CollectionCast).where(
                CollectionCast.collection_id == collection.id,
                CollectionCast.cast_hash == cast_hash,
            )
        )
        if entry is None:
            raise NotFoundError("Cast is not in this collection")
        session.delete(entry)
    logger.info("Cast %s removed from collection %s by fid %d", cast_hash, name, user_fid)


def reorder_casts(engine, name: str, cast_hashes: list[str]) -> None:
    """Set ``order`` to 1..n following *cast_hashes*."""
    if len(set(cast_hashes)) != len(cast_hashes):
        raise ValidationError("castHashes contains duplicates")

    with get_session(engine) as session:
        collection = _load(session, name)
        entries = {
            e.cast_hash: e
            for e in session.scalars(
                select(CollectionCast).where(CollectionCast.collection_id == collection.id)
            )
        }
        unknown = [h for h in cast_hashes if h not in entries]
        if unknown:
            raise ValidationError(f"Casts not in collection: {', '.join(unknown)}")

        for position, cast_hash in enumerate(cast_hashes, start=1):
            entries[cast_hash].order = position

    logger.info("Collection %s reordered (%d casts)", name, len(cast_hashes))


def list_collection_casts(
    engine, name: str, *, cursor: str | None = None, limit: int = 25
) -> dict[str, Any]:
    with Session(engine) as session:
        collection = _load(session, name)
        stmt = (
            select(CollectionCast, CuratedCast)
            .join(CuratedCast, CuratedCast.cast_hash == CollectionCast.cast_hash)
            .where(CollectionCast.collection_id == collection.id)
        )

        if collection.order_mode == "manual":
            offset = decode_offset_cursor(cursor)
            rows = session.execute(
                stmt.order_by(
                    CollectionCast.order.is_(None), CollectionCast.order, CollectionCast.id
                ).offset(offset).limit(limit + 1)
            ).all()
            page = rows[:limit]
            next_cursor = encode_offset_cursor(offset + limit) if len(rows) > limit else None
        else:
            ascending = collection.order_direction == "asc"
            keyset = keyset_after if ascending else keyset_before
            clause = keyset(CollectionCast.created_at, CollectionCast.id, cursor)
            if clause is not None:
                stmt = stmt.where(clause)
            if ascending:
                stmt = stmt.order_by(CollectionCast.created_at.asc(), CollectionCast.id.asc())
            else:
                stmt = stmt.order_by(CollectionCast.created_at.desc(), CollectionCast.id.desc())
            rows = session.execute(stmt.limit(limit + 1)).all()
            page, next_cursor = paginate(rows, limit, key=lambda r: (r[0].created_at, r[0].id))

        items = [
            {
                "cast_hash": cast.cast_hash,
                "cast": cast.cast_data,
                "order": entry.order,
                "curator_fid": entry.curator_fid,
                "quality_score": cast.quality_score,
                "added_at": entry.created_at.isoformat(),
            }
            for entry, cast in page
        ]
    return {"collection": serialize_collection(collection), "items": items, "next_cursor": next_cursor}
