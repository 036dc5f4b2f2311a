"""
depthcaster.services.curation_service — Curate / uncurate casts
================================================================

A cast enters ``curated_casts`` the first time any curator features it.
Every curator who features it gets one row in ``curator_cast_curations``;
the ``(cast_hash, curator_fid)`` unique constraint is what makes a second
curation by the same curator a :class:`~depthcaster.errors.ConflictError`.

When the last curator withdraws, the cast row is deleted and its
collection entries go with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from depthcaster.database.engine import get_session
from depthcaster.database.models import CuratedCast, CuratorCastCuration
from depthcaster.engine.cast_metadata import (
    author_profile,
    extract_cast_metadata,
    extract_cast_timestamp,
)
from depthcaster.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from depthcaster.services.user_service import ensure_user

if TYPE_CHECKING:
    from depthcaster.services.deepseek_client import QualityAnalysis
    from depthcaster.services.neynar_client import NeynarClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CurationResult:
    cast_hash: str
    is_first_curation: bool
    curator_fids: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _curator_fids(session: Session, cast_hash: str) -> list[int]:
    return list(session.scalars(
        select(CuratorCastCuration.curator_fid)
        .where(CuratorCastCuration.cast_hash == cast_hash)
        .order_by(CuratorCastCuration.created_at, CuratorCastCuration.id)
    ))


def find_curated_cast(session: Session, cast_hash: str) -> CuratedCast | None:
    return session.scalar(select(CuratedCast).where(CuratedCast.cast_hash == cast_hash))


def insert_curated_cast(
    session: Session, cast_hash: str, cast_data: dict[str, Any], curator_fid: int
) -> CuratedCast:
    """Add a new ``curated_casts`` row with extracted metadata (no commit)."""
    author = author_profile(cast_data)
    if author:
        ensure_user(session, author.pop("fid"), **author)

    meta = extract_cast_metadata(cast_data)
    row = CuratedCast(
        cast_hash=cast_hash,
        cast_data=cast_data,
        cast_created_at=extract_cast_timestamp(cast_data),
        curator_fid=curator_fid,
        cast_text=meta.cast_text,
        cast_text_length=meta.cast_text_length,
        author_fid=meta.author_fid,
        likes_count=meta.likes_count,
        recasts_count=meta.recasts_count,
        replies_count=meta.replies_count,
        engagement_score=meta.engagement_score,
        parent_hash=meta.parent_hash,
    )
    session.add(row)
    session.flush()
    return row


# ---------------------------------------------------------------------------
# Curate / uncurate
# ---------------------------------------------------------------------------
def _record_curation(
    engine, cast_hash: str, cast_data: dict[str, Any], curator_fid: int
) -> tuple[bool, list[int]]:
    with get_session(engine) as session:
        ensure_user(session, curator_fid)

        is_first = find_curated_cast(session, cast_hash) is None
        if is_first:
            insert_curated_cast(session, cast_hash, cast_data, curator_fid)

        session.add(CuratorCastCuration(cast_hash=cast_hash, curator_fid=curator_fid))
        session.flush()
        return is_first, _curator_fids(session, cast_hash)


def _has_curated(engine, cast_hash: str, curator_fid: int) -> bool:
    with Session(engine) as session:
        return session.scalar(
            select(CuratorCastCuration.id).where(
                CuratorCastCuration.cast_hash == cast_hash,
                CuratorCastCuration.curator_fid == curator_fid,
            )
        ) is not None


def curate_cast(
    engine, cast_hash: str, cast_data: dict[str, Any], curator_fid: int
) -> CurationResult:
    """Record *curator_fid*'s curation of *cast_hash*.

    Raises
    ------
    ConflictError
        If this curator already curated the cast.
    """
    if not cast_hash:
        raise ValidationError("castHash is required")
    if not cast_data:
        raise ValidationError("castData is required")

    try:
        is_first, curators = _record_curation(engine, cast_hash, cast_data, curator_fid)
    except IntegrityError as exc:
        if _has_curated(engine, cast_hash, curator_fid):
            logger.warning("Duplicate curation of %s by fid %d", cast_hash, curator_fid)
            raise ConflictError("Cast is already curated") from exc
        # Another curator inserted the cast row first; join as an additional curator
        logger.info("Fid %d lost the race to curate %s first; retrying", curator_fid, cast_hash)
        try:
            is_first, curators = _record_curation(engine, cast_hash, cast_data, curator_fid)
        except IntegrityError as retry_exc:
            raise ConflictError("Cast is already curated") from retry_exc

    logger.info(
        "Cast %s curated by fid %d (%s curation, %d curators)",
        cast_hash, curator_fid, "first" if is_first else "additional", len(curators),
    )
    return CurationResult(cast_hash, is_first, curators)


def uncurate_cast(engine, cast_hash: str, curator_fid: int) -> dict[str, Any]:
    """Withdraw a curation; delete the cast when no curators remain."""
    with get_session(engine) as session:
        curation = session.scalar(
            select(CuratorCastCuration).where(
                CuratorCastCuration.cast_hash == cast_hash,
                CuratorCastCuration.curator_fid == curator_fid,
            )
        )
        if curation is None:
            raise NotFoundError("Curation not found")

        session.delete(curation)
        session.flush()

        remaining = session.scalar(
            select(func.count(CuratorCastCuration.id))
            .where(CuratorCastCuration.cast_hash == cast_hash)
        ) or 0

        cast_deleted = False
        if remaining == 0:
            cast = find_curated_cast(session, cast_hash)
            if cast is not None:
                session.delete(cast)
                cast_deleted = True

    logger.info(
        "Cast %s uncurated by fid %d (remaining=%d, deleted=%s)",
        cast_hash, curator_fid, remaining, cast_deleted,
    )
    return {"cast_hash": cast_hash, "remaining_curators": remaining, "cast_deleted": cast_deleted}


# ---------------------------------------------------------------------------
# Webhook-driven curation
# ---------------------------------------------------------------------------
async def resolve_webhook_target(
    payload: dict[str, Any], neynar: NeynarClient | None
) -> tuple[str, dict[str, Any], int]:
    """Work out ``(cast_hash, cast_data, curator_fid)`` from a webhook body.

    Accepts the Neynar event shape ``{"type": ..., "data": {cast}}`` and the
    direct shape ``{"castHash": ..., "castData": {...}, "curatorFid": ...}``.
    A reply curates its *parent*; if the parent can't be fetched the reply
    itself is curated.
    """
    cast_data = payload.get("data") or payload.get("castData")
    cast_hash = (cast_data or {}).get("hash") or payload.get("castHash")
    final_data = cast_data

    parent_hash = (cast_data or {}).get("parent_hash")
    if parent_hash:
        if neynar is None:
            logger.warning("No Neynar client; curating reply %s instead of parent", cast_hash)
        else:
            try:
                parent = await neynar.lookup_cast(parent_hash)
                cast_hash, final_data = parent_hash, parent
            except UpstreamError:
                logger.exception("Parent fetch failed for %s; curating reply instead", parent_hash)

    curator_fid = ((cast_data or {}).get("author") or {}).get("fid") or payload.get("curatorFid")

    if not cast_hash:
        raise ValidationError("castHash is required")
    if not final_data:
        raise ValidationError("castData is required")
    if not curator_fid:
        raise ValidationError("curatorFid is required")
    return cast_hash, final_data, int(curator_fid)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_curators_for_cast(engine, cast_hash: str) -> list[int]:
    with Session(engine) as session:
        return _curator_fids(session, cast_hash)


def is_curated(engine, cast_hash: str) -> bool:
    with Session(engine) as session:
        return find_curated_cast(session, cast_hash) is not None


def get_curation_info(engine, cast_hash: str) -> dict[str, Any]:
    with Session(engine) as session:
        cast = find_curated_cast(session, cast_hash)
        if cast is None:
            return {"cast_hash": cast_hash, "is_curated": False, "curator_fids": []}
        return {
            "cast_hash": cast_hash,
            "is_curated": True,
            "curator_fids": _curator_fids(session, cast_hash),
            "quality_score": cast.quality_score,
            "category": cast.category,
            "curated_at": cast.created_at.isoformat(),
        }


def update_quality(engine, cast_hash: str, analysis: QualityAnalysis) -> None:
    with get_session(engine) as session:
        cast = find_curated_cast(session, cast_hash)
        if cast is None:
            raise NotFoundError(f"Cast {cast_hash} is not curated")
        cast.quality_score = analysis.quality_score
        cast.category = analysis.category
        cast.quality_analyzed_at = datetime.now(UTC)
