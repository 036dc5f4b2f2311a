"""
depthcaster.services.tag_service — Admin cast tags
===================================================
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from depthcaster.database.engine import get_session
from depthcaster.database.models import CastTag
from depthcaster.errors import ConflictError, NotFoundError, ValidationError
from depthcaster.services.user_service import ensure_user

logger = logging.getLogger(__name__)

_MAX_TAG_LENGTH = 50


def normalize_tag(tag: str) -> str:
    value = (tag or "").strip().lower()
    if not value:
        raise ValidationError("tag is required")
    if len(value) > _MAX_TAG_LENGTH:
        raise ValidationError(f"tag must be at most {_MAX_TAG_LENGTH} characters")
    return value


def add_tag(engine, cast_hash: str, tag: str, admin_fid: int) -> dict[str, Any]:
    tag = normalize_tag(tag)
    try:
        with get_session(engine) as session:
            existing = session.scalar(
                select(CastTag.id).where(CastTag.cast_hash == cast_hash, CastTag.tag == tag)
            )
            if existing is not None:
                raise ConflictError(f"Cast already tagged {tag!r}")
            ensure_user(session, admin_fid)
            row = CastTag(cast_hash=cast_hash, tag=tag, admin_fid=admin_fid)
            session.add(row)
            session.flush()
            result = {"id": row.id, "cast_hash": cast_hash, "tag": tag, "admin_fid": admin_fid}
    except IntegrityError as exc:
        raise ConflictError(f"Cast already tagged {tag!r}") from exc
    logger.info("Cast %s tagged %r by admin %d", cast_hash, tag, admin_fid)
    return result


def remove_tag(engine, cast_hash: str, tag: str) -> None:
    tag = normalize_tag(tag)
    with get_session(engine) as session:
        row = session.scalar(
            select(CastTag).where(CastTag.cast_hash == cast_hash, CastTag.tag == tag)
        )
        if row is None:
            raise NotFoundError(f"Cast {cast_hash} is not tagged {tag!r}")
        session.delete(row)


def list_tags(engine) -> list[dict[str, Any]]:
    """Distinct tags with usage counts, most used first."""
    with Session(engine) as session:
        rows = session.execute(
            select(CastTag.tag, func.count(CastTag.id).label("n"))
            .group_by(CastTag.tag)
            .order_by(func.count(CastTag.id).desc(), CastTag.tag)
        ).all()
    return [{"tag": tag, "count": n} for tag, n in rows]


def tags_for_cast(engine, cast_hash: str) -> list[str]:
    with Session(engine) as session:
        return list(session.scalars(
            select(CastTag.tag).where(CastTag.cast_hash == cast_hash).order_by(CastTag.tag)
        ))


def casts_for_tag(engine, tag: str) -> list[str]:
    tag = normalize_tag(tag)
    with Session(engine) as session:
        return list(session.scalars(
            select(CastTag.cast_hash)
            .where(CastTag.tag == tag)
            .order_by(CastTag.created_at.desc(), CastTag.id.desc())
        ))
