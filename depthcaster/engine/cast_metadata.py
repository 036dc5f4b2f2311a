"""
depthcaster.engine.cast_metadata — Cast payload extraction
===========================================================

Neynar cast payloads are stored verbatim as JSONB.  The handful of fields
feeds filter and sort on are copied into real columns at curation time so
queries never have to dig into the JSON.

Reaction counts come in two shapes depending on the endpoint: either
``reactions.likes_count`` or a ``reactions.likes`` array.  Both are handled.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from depthcaster.constants import (
    ENGAGEMENT_WEIGHT_LIKES,
    ENGAGEMENT_WEIGHT_RECASTS,
    ENGAGEMENT_WEIGHT_REPLIES,
)


@dataclass(frozen=True, slots=True)
class CastMetadata:
    cast_text: str | None
    cast_text_length: int
    author_fid: int | None
    likes_count: int
    recasts_count: int
    replies_count: int
    engagement_score: int
    parent_hash: str | None


def _reaction_count(reactions: dict, name: str) -> int:
    count = reactions.get(f"{name}_count")
    if count is not None:
        return int(count)
    items = reactions.get(name)
    return len(items) if isinstance(items, list) else 0


def _counts(cast: dict[str, Any]) -> tuple[int, int, int]:
    reactions = cast.get("reactions") or {}
    replies = cast.get("replies") or {}
    likes = _reaction_count(reactions, "likes")
    recasts = _reaction_count(reactions, "recasts")
    return likes, recasts, int(replies.get("count") or 0)


def calculate_engagement_score(cast: dict[str, Any]) -> int:
    """Weighted engagement: replies x4, recasts x2, likes x1."""
    likes, recasts, replies = _counts(cast or {})
    return (
        replies * ENGAGEMENT_WEIGHT_REPLIES
        + recasts * ENGAGEMENT_WEIGHT_RECASTS
        + likes * ENGAGEMENT_WEIGHT_LIKES
    )


def _author_fid(cast: dict[str, Any]) -> int | None:
    raw = (cast.get("author") or {}).get("fid")
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def extract_cast_metadata(cast_data: dict[str, Any] | None) -> CastMetadata:
    """Pull the queryable columns out of a Neynar cast payload.

    Never raises: missing or malformed fields become ``None`` / ``0``.
    """
    cast = cast_data or {}
    text = cast.get("text") or None
    likes, recasts, replies = _counts(cast)

    return CastMetadata(
        cast_text=text,
        cast_text_length=len(text) if text else 0,
        author_fid=_author_fid(cast),
        likes_count=likes,
        recasts_count=recasts,
        replies_count=replies,
        engagement_score=calculate_engagement_score(cast),
        parent_hash=cast.get("parent_hash") or None,
    )


def extract_cast_timestamp(cast_data: dict[str, Any] | None) -> datetime | None:
    """Parse the cast's ISO-8601 ``timestamp`` (``Z`` suffix allowed)."""
    raw = (cast_data or {}).get("timestamp")
    if not raw or not isinstance(raw, str):
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def author_profile(cast_data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return ``{fid, username, display_name, pfp_url}`` for the cast author."""
    cast = cast_data or {}
    fid = _author_fid(cast)
    if fid is None:
        return None
    author = cast.get("author") or {}
    return {
        "fid": fid,
        "username": author.get("username"),
        "display_name": author.get("display_name"),
        "pfp_url": author.get("pfp_url"),
    }
