"""
depthcaster.services.notification_service — Curator notifications
===================================================================

In-app notifications for curators about the casts they curated:

- ``curated.quality_reply`` — a reply scoring at or above the curator's threshold
- ``curated.curated``       — another curator featured the same cast
- ``curated.liked`` / ``curated.recast`` — someone reacted to it

Each curator's preferences decide whether they hear about an event.
``(user_fid, cast_hash, type)`` is unique, so replays of the same webhook
never produce duplicates.

Fan-out is "log and continue": one curator failing never stops the rest.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from depthcaster.constants import (
    NOTIFY_CURATED,
    NOTIFY_LIKED,
    NOTIFY_QUALITY_REPLY,
    NOTIFY_RECAST,
)
from depthcaster.database.engine import get_session
from depthcaster.database.models import User, UserNotification
from depthcaster.engine.pagination import keyset_before, paginate
from depthcaster.errors import ValidationError
from depthcaster.services.curation_service import get_curators_for_cast
from depthcaster.services.user_service import ensure_user, merge_preferences

logger = logging.getLogger(__name__)

_EVENT_FLAGS = {
    "curated": "notifyOnCurated",
    "liked": "notifyOnLiked",
    "recast": "notifyOnRecast",
}
_INTERACTION_TYPES = {"liked": NOTIFY_LIKED, "recast": NOTIFY_RECAST}


def should_notify(preferences: dict | None, event: str, quality_score: int | None = None) -> bool:
    prefs = merge_preferences(preferences)
    if event == "quality_reply":
        if not prefs["notifyOnQualityReply"] or quality_score is None:
            return False
        return quality_score >= prefs["qualityReplyThreshold"]
    flag = _EVENT_FLAGS.get(event)
    return bool(flag and prefs.get(flag))


def create_notification(
    engine,
    user_fid: int,
    type_: str,
    cast_hash: str,
    cast_data: dict[str, Any],
    author_fid: int,
) -> bool:
    """Insert one notification.  Returns False if it already existed."""
    try:
        with get_session(engine) as session:
            existing = session.scalar(
                select(UserNotification.id).where(
                    UserNotification.user_fid == user_fid,
                    UserNotification.cast_hash == cast_hash,
                    UserNotification.type == type_,
                )
            )
            if existing is not None:
                return False
            ensure_user(session, user_fid)
            session.add(UserNotification(
                user_fid=user_fid,
                type=type_,
                cast_hash=cast_hash,
                cast_data=cast_data,
                author_fid=author_fid,
            ))
    except IntegrityError:
        logger.info("Duplicate %s notification for fid %d on %s", type_, user_fid, cast_hash)
        return False

    logger.info("Created %s notification for fid %d on %s", type_, user_fid, cast_hash)
    return True


def _preferences_for(engine, fids: list[int]) -> dict[int, dict | None]:
    if not fids:
        return {}
    with Session(engine) as session:
        rows = session.execute(select(User.fid, User.preferences).where(User.fid.in_(fids))).all()
    return {fid: prefs for fid, prefs in rows}


def _fan_out(
    engine,
    curators: list[int],
    event: str,
    type_: str,
    cast_hash: str,
    cast_data: dict[str, Any],
    author_fid: int,
    quality_score: int | None = None,
) -> int:
    prefs = _preferences_for(engine, curators)
    created = 0
    for curator_fid in curators:
        try:
            if not should_notify(prefs.get(curator_fid), event, quality_score):
                continue
            if create_notification(engine, curator_fid, type_, cast_hash, cast_data, author_fid):
                created += 1
        except Exception:
            logger.exception("Failed to notify curator %d about %s", curator_fid, cast_hash)
    return created


# ---------------------------------------------------------------------------
# Fan-out entry points
# ---------------------------------------------------------------------------
def notify_curators_about_quality_reply(
    engine,
    curated_cast_hash: str,
    reply_hash: str,
    reply_data: dict[str, Any],
    quality_score: int,
) -> int:
    author_fid = ((reply_data or {}).get("author") or {}).get("fid")
    if not author_fid:
        logger.info("Reply %s has no author fid; skipping notifications", reply_hash)
        return 0
    curators = get_curators_for_cast(engine, curated_cast_hash)
    return _fan_out(
        engine, curators, "quality_reply", NOTIFY_QUALITY_REPLY,
        reply_hash, reply_data, int(author_fid), quality_score,
    )


def notify_curators_about_new_curation(
    engine, cast_hash: str, cast_data: dict[str, Any], new_curator_fid: int
) -> int:
    curators = [f for f in get_curators_for_cast(engine, cast_hash) if f != new_curator_fid]
    if not curators:
        return 0
    author_fid = ((cast_data or {}).get("author") or {}).get("fid") or new_curator_fid
    return _fan_out(
        engine, curators, "curated", NOTIFY_CURATED, cast_hash, cast_data, int(author_fid)
    )


def notify_curators_about_interaction(
    engine, cast_hash: str, cast_data: dict[str, Any], interaction: str, user_fid: int
) -> int:
    type_ = _INTERACTION_TYPES.get(interaction)
    if type_ is None:
        raise ValidationError(f"Unknown interaction: {interaction}")
    curators = [f for f in get_curators_for_cast(engine, cast_hash) if f != user_fid]
    if not curators:
        return 0
    author_fid = ((cast_data or {}).get("author") or {}).get("fid") or user_fid
    return _fan_out(engine, curators, interaction, type_, cast_hash, cast_data, int(author_fid))


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
def list_notifications(
    engine,
    fid: int,
    *,
    cursor: str | None = None,
    limit: int = 25,
    unread_only: bool = False,
) -> dict[str, Any]:
    stmt = select(UserNotification).where(UserNotification.user_fid == fid)
    if unread_only:
        stmt = stmt.where(UserNotification.is_read.is_(False))
    after = keyset_before(UserNotification.created_at, UserNotification.id, cursor)
    if after is not None:
        stmt = stmt.where(after)
    stmt = stmt.order_by(
        UserNotification.created_at.desc(), UserNotification.id.desc()
    ).limit(limit + 1)

    with Session(engine) as session:
        rows = session.scalars(stmt).all()
    page, next_cursor = paginate(rows, limit, key=lambda n: (n.created_at, n.id))
    items = [
        {
            "id": n.id,
            "type": n.type,
            "cast_hash": n.cast_hash,
            "cast": n.cast_data,
            "author_fid": n.author_fid,
            "is_read": n.is_read,
            "created_at": n.created_at.isoformat(),
        }
        for n in page
    ]
    return {"items": items, "next_cursor": next_cursor}


def unread_count(engine, fid: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count(UserNotification.id)).where(
                UserNotification.user_fid == fid, UserNotification.is_read.is_(False)
            )
        ) or 0


def mark_seen(engine, fid: int, ids: list[int] | None = None) -> int:
    """Mark *ids* (or everything, when ``None``) as read.  Returns rows touched."""
    stmt = (
        update(UserNotification)
        .where(UserNotification.user_fid == fid, UserNotification.is_read.is_(False))
        .values(is_read=True)
    )
    if ids is not None:
        stmt = stmt.where(UserNotification.id.in_(ids))
    with get_session(engine) as session:
        return session.execute(stmt).rowcount or 0


def delete_notifications(engine, fid: int, ids: list[int]) -> int:
    if not ids:
        return 0
    with get_session(engine) as session:
        return session.execute(
            delete(UserNotification).where(
                UserNotification.user_fid == fid, UserNotification.id.in_(ids)
            )
        ).rowcount or 0
