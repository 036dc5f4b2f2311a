"""
depthcaster.services.feed_service — Feed assembly & pagination
===============================================================

Two kinds of feed:

**Curated feeds** come from our own tables.  They are keyset-paginated
newest-first over ``(created_at, id)`` of ``curated_casts``, where
``created_at`` is the time of the first curation.  Pages carry an opaque
``next_cursor`` (see :mod:`depthcaster.engine.pagination`).

**External feeds** are assembled from Neynar (following / curated FIDs /
channels / trending), then run through the heuristic filters and ranking
in :mod:`depthcaster.engine.quality`.  Their cursor is Neynar's own.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from depthcaster.constants import CONVERSATION_MIN_REPLIES, DEEP_THOUGHT_MIN_LENGTH
from depthcaster.database.models import (
    CuratedCast,
    CuratorCastCuration,
    CuratorPackUser,
    User,
    UserPackSubscription,
)
from depthcaster.engine.pagination import keyset_before, paginate
from depthcaster.engine.quality import filter_cast, is_bot_cast, sort_casts_by_quality
from depthcaster.errors import UpstreamError, ValidationError

if TYPE_CHECKING:
    from depthcaster.config import DepthcasterConfig
    from depthcaster.services.neynar_client import NeynarClient

logger = logging.getLogger(__name__)

EXTERNAL_FEED_TYPES = ("following", "curated", "channels", "trending")


def _page(items: list[dict[str, Any]], next_cursor: str | None) -> dict[str, Any]:
    return {"items": items, "next_cursor": next_cursor}


def _curators_by_hash(session: Session, hashes: list[str]) -> dict[str, list[int]]:
    result: dict[str, list[int]] = defaultdict(list)
    if not hashes:
        return result
    rows = session.execute(
        select(CuratorCastCuration.cast_hash, CuratorCastCuration.curator_fid)
        .where(CuratorCastCuration.cast_hash.in_(hashes))
        .order_by(CuratorCastCuration.created_at, CuratorCastCuration.id)
    ).all()
    for cast_hash, fid in rows:
        result[cast_hash].append(fid)
    return result


def serialize_curated_cast(cast: CuratedCast, curator_fids: list[int]) -> dict[str, Any]:
    return {
        "cast_hash": cast.cast_hash,
        "cast": cast.cast_data,
        "quality_score": cast.quality_score,
        "category": cast.category,
        "engagement_score": cast.engagement_score,
        "curated_at": cast.created_at.isoformat(),
        "curator_fids": curator_fids,
    }


# ---------------------------------------------------------------------------
# Curated feeds
# ---------------------------------------------------------------------------
def get_curated_feed(
    engine,
    *,
    cursor: str | None = None,
    limit: int = 25,
    min_quality: int | None = None,
    category: str | None = None,
    curator_fids: list[int] | None = None,
    author_fid: int | None = None,
) -> dict[str, Any]:
    """One page of curated casts, newest curation first."""
    stmt = select(CuratedCast)
    if min_quality is not None:
        stmt = stmt.where(CuratedCast.quality_score >= min_quality)
    if category:
        stmt = stmt.where(CuratedCast.category == category)
    if author_fid is not None:
        stmt = stmt.where(CuratedCast.author_fid == author_fid)
    if curator_fids is not None:
        stmt = stmt.where(CuratedCast.cast_hash.in_(
            select(CuratorCastCuration.cast_hash)
            .where(CuratorCastCuration.curator_fid.in_(curator_fids))
        ))
    after = keyset_before(CuratedCast.created_at, CuratedCast.id, cursor)
    if after is not None:
        stmt = stmt.where(after)

    stmt = stmt.order_by(CuratedCast.created_at.desc(), CuratedCast.id.desc()).limit(limit + 1)

    with Session(engine) as session:
        rows = session.scalars(stmt).all()
        page, next_cursor = paginate(rows, limit, key=lambda c: (c.created_at, c.id))
        curators = _curators_by_hash(session, [c.cast_hash for c in page])
        items = [serialize_curated_cast(c, curators.get(c.cast_hash, [])) for c in page]
    return _page(items, next_cursor)


def subscribed_curator_fids(engine, viewer_fid: int) -> list[int]:
    with Session(engine) as session:
        return sorted(set(session.scalars(
            select(CuratorPackUser.user_fid)
            .join(UserPackSubscription, UserPackSubscription.pack_id == CuratorPackUser.pack_id)
            .where(UserPackSubscription.user_fid == viewer_fid)
        )))


def get_pack_feed(engine, viewer_fid: int, **kwargs: Any) -> dict[str, Any]:
    """Curated feed restricted to curators in the viewer's subscribed packs."""
    fids = subscribed_curator_fids(engine, viewer_fid)
    if not fids:
        return _page([], None)
    return get_curated_feed(engine, curator_fids=fids, **kwargs)


def get_user_curated_casts(
    engine, fid: int, *, cursor: str | None = None, limit: int = 25
) -> dict[str, Any]:
    """Casts curated by *fid*, newest curation first."""
    stmt = (
        select(CuratorCastCuration, CuratedCast)
        .join(CuratedCast, CuratedCast.cast_hash == CuratorCastCuration.cast_hash)
        .where(CuratorCastCuration.curator_fid == fid)
    )
    after = keyset_before(CuratorCastCuration.created_at, CuratorCastCuration.id, cursor)
    if after is not None:
        stmt = stmt.where(after)
    stmt = stmt.order_by(
        CuratorCastCuration.created_at.desc(), CuratorCastCuration.id.desc()
    ).limit(limit + 1)

    with Session(engine) as session:
        rows = session.execute(stmt).all()
        page, next_cursor = paginate(rows, limit, key=lambda r: (r[0].created_at, r[0].id))
        curators = _curators_by_hash(session, [cast.cast_hash for _, cast in page])
        items = []
        for curation, cast in page:
            item = serialize_curated_cast(cast, curators.get(cast.cast_hash, []))
            item["curated_by_user_at"] = curation.created_at.isoformat()
            items.append(item)
    return _page(items, next_cursor)


def get_miniapp_feed(engine, *, limit: int = 25, min_quality: int = 70) -> list[dict[str, Any]]:
    """High-quality curated casts with author profile fields for the miniapp."""
    stmt = (
        select(CuratedCast, User)
        .outerjoin(User, User.fid == CuratedCast.author_fid)
        .where(CuratedCast.quality_score >= min_quality)
        .order_by(CuratedCast.created_at.desc(), CuratedCast.id.desc())
        .limit(limit)
    )
    with Session(engine) as session:
        rows = session.execute(stmt).all()

    items = []
    for cast, author in rows:
        cast_author = (cast.cast_data or {}).get("author") or {}
        items.append({
            "cast_hash": cast.cast_hash,
            "text": cast.cast_text,
            "quality_score": cast.quality_score,
            "category": cast.category,
            "cast_created_at": cast.cast_created_at.isoformat() if cast.cast_created_at else None,
            "curated_at": cast.created_at.isoformat(),
            "author": {
                "fid": cast.author_fid,
                "username": (author.username if author else None) or cast_author.get("username"),
                "display_name": (author.display_name if author else None) or cast_author.get("display_name"),
                "pfp_url": (author.pfp_url if author else None) or cast_author.get("pfp_url"),
            },
        })
    return items


# ---------------------------------------------------------------------------
# External (Neynar) feeds
# ---------------------------------------------------------------------------
async def _fetch_source(
    neynar: NeynarClient, source: str, cfg: DepthcasterConfig,
    *, viewer_fid: int | None, limit: int, cursor: str | None,
) -> dict[str, Any]:
    if source == "following":
        return await neynar.fetch_feed(
            feed_type="following", fid=viewer_fid, limit=limit, cursor=cursor
        )
    if source == "curated" and cfg.curated_fids:
        return await neynar.fetch_feed(
            filter_type="fids", fids=list(cfg.curated_fids), limit=limit, cursor=cursor
        )
    if source == "channels" and cfg.curated_channels:
        return await neynar.fetch_feed_by_channel_ids(
            list(cfg.curated_channels), viewer_fid=viewer_fid, limit=limit, cursor=cursor
        )
    if source in ("curated", "channels"):
        # Unconfigured source contributes nothing
        return {"casts": []}
    return await neynar.fetch_feed(
        filter_type="global_trending", viewer_fid=viewer_fid, limit=limit, cursor=cursor
    )


async def assemble_external_feed(
    neynar: NeynarClient,
    feed_type: str,
    cfg: DepthcasterConfig,
    *,
    viewer_fid: int | None = None,
    cursor: str | None = None,
    limit: int = 30,
) -> dict[str, Any]:
    """Fetch, merge, filter and rank an external feed."""
    next_cursor: str | None = None

    if feed_type in EXTERNAL_FEED_TYPES:
        if feed_type == "following" and viewer_fid is None:
            raise ValidationError("The following feed requires a signed-in viewer")
        # Unconfigured curated/channels feeds fall back to trending
        source = feed_type
        if (feed_type == "curated" and not cfg.curated_fids) or (
            feed_type == "channels" and not cfg.curated_channels
        ):
            source = "trending"
        data = await _fetch_source(
            neynar, source, cfg, viewer_fid=viewer_fid, limit=limit, cursor=cursor
        )
        casts = data.get("casts") or []
        next_cursor = (data.get("next") or {}).get("cursor")
    else:
        per_source = max(limit // 3, 1)
        results = await asyncio.gather(
            *(
                _fetch_source(neynar, source, cfg, viewer_fid=viewer_fid, limit=per_source, cursor=None)
                for source in ("curated", "channels", "trending")
            ),
            return_exceptions=True,
        )
        casts: list[dict[str, Any]] = []
        seen: set[str] = set()
        for source, result in zip(("curated", "channels", "trending"), results):
            if isinstance(result, UpstreamError):
                logger.warning("External feed source %s failed: %s", source, result)
                continue
            if isinstance(result, BaseException):
                raise result
            for cast in result.get("casts") or []:
                cast_hash = cast.get("hash")
                if not cast_hash or cast_hash in seen:
                    continue
                seen.add(cast_hash)
                casts.append(cast)

    min_length = DEEP_THOUGHT_MIN_LENGTH if feed_type == "deep-thoughts" else cfg.min_cast_length
    min_replies = CONVERSATION_MIN_REPLIES if feed_type == "conversations" else 0
    filtered = [
        c for c in casts
        if not is_bot_cast(c, cfg.hidden_bots)
        and filter_cast(
            c, min_length=min_length, min_user_score=cfg.min_user_score, min_replies=min_replies
        )
    ]
    ranked = sort_casts_by_quality(filtered)[:limit]

    logger.info(
        "External feed %s: %d fetched, %d kept, %d served",
        feed_type, len(casts), len(filtered), len(ranked),
    )
    return {"casts": ranked, "next_cursor": next_cursor}
