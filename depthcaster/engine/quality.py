"""
depthcaster.engine.quality — Heuristic cast filters & ranking
==============================================================

Pure functions over Neynar cast dicts.  These run on external feeds before
anything is shown, and post-process LLM scores so that content-free casts
can never rank highly no matter what the model says.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any

from depthcaster.constants import (
    MIN_CAST_LENGTH_THRESHOLD,
    MIN_USER_SCORE_THRESHOLD,
    QUALITY_CATEGORIES,
)

_LETTER_OR_DIGIT = re.compile(r"[A-Za-z0-9]")

# Ultra-short / emoji-only caps applied after LLM scoring
_NO_TEXT_CAP = 5
_SHORT_TEXT_CAP = 20
_SHORT_TEXT_MAX_WORDS = 3
_SHORT_TEXT_MAX_CHARS = 30


def _user_score(cast: dict[str, Any]) -> float | None:
    author = cast.get("author") or {}
    score = author.get("score")
    if score is None:
        score = (author.get("experimental") or {}).get("neynar_user_score")
    return float(score) if score is not None else None


# ---------------------------------------------------------------------------
# Bot detection
# ---------------------------------------------------------------------------
def is_bot_cast(cast: dict[str, Any], hidden_bots: Iterable[str]) -> bool:
    """True if the author or any mentioned profile is a hidden bot."""
    bots = {b.lower() for b in hidden_bots}
    if not bots:
        return False

    username = ((cast.get("author") or {}).get("username") or "").lower()
    if username in bots:
        return True

    for profile in cast.get("mentioned_profiles") or []:
        mentioned = ((profile or {}).get("username") or "").lower()
        if mentioned in bots:
            return True
    return False


def meets_quality_threshold(
    cast: dict[str, Any],
    hidden_bots: Iterable[str] = (),
    *,
    min_user_score: float = MIN_USER_SCORE_THRESHOLD,
    min_length: int = MIN_CAST_LENGTH_THRESHOLD,
) -> bool:
    """A cast qualifies on author reputation *or* sheer length.

    Bot casts always fail.
    """
    if is_bot_cast(cast, hidden_bots):
        return False

    score = _user_score(cast)
    if score is not None and score > min_user_score:
        return True

    return len(cast.get("text") or "") > min_length


# ---------------------------------------------------------------------------
# Feed filtering & ranking
# ---------------------------------------------------------------------------
def filter_cast(
    cast: dict[str, Any],
    *,
    min_length: int = 50,
    min_user_score: float = 0.55,
    min_replies: int = 0,
) -> bool:
    """Return False if the cast fails any of the feed's minimums."""
    score = _user_score(cast)
    if score is not None and score < min_user_score:
        return False

    text = cast.get("text")
    if text and len(text) < min_length:
        return False

    if min_replies > 0:
        replies = int(((cast.get("replies") or {}).get("count")) or 0)
        if replies < min_replies:
            return False

    return True


def score_cast(cast: dict[str, Any]) -> float:
    """Rank score for external feeds.  Replies dominate; length is capped."""
    author = cast.get("author") or {}
    reactions = cast.get("reactions") or {}

    score = (_user_score(cast) or 0.0) * 30
    score += min(len(cast.get("text") or "") / 10, 20)
    score += int(((cast.get("replies") or {}).get("count")) or 0) * 5
    score += int(reactions.get("likes_count") or 0)
    score += int(reactions.get("recasts_count") or 0) * 0.5

    if author.get("power_badge"):
        score += 10
    return score


def sort_casts_by_quality(casts: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return a new list, highest score first (stable for ties)."""
    return sorted(casts, key=score_cast, reverse=True)


# ---------------------------------------------------------------------------
# LLM post-processing
# ---------------------------------------------------------------------------
def apply_short_text_caps(text: str | None, score: int) -> int:
    """Cap scores for emoji-only and ultra-short acknowledgements.

    Only applies when there is text; embed-only casts are left alone.
    """
    normalized = (text or "").strip()
    if not normalized:
        return score

    if not _LETTER_OR_DIGIT.search(normalized):
        return min(score, _NO_TEXT_CAP)

    words = normalized.split()
    if len(words) <= _SHORT_TEXT_MAX_WORDS and len(normalized) <= _SHORT_TEXT_MAX_CHARS:
        return min(score, _SHORT_TEXT_CAP)
    return score


def normalize_category(raw: Any) -> str:
    """Map a model-provided category onto :data:`QUALITY_CATEGORIES`.

    Anything that is not a string is ``"other"``.
    """
    if not isinstance(raw, str):
        return "other"
    category = raw.lower().strip()
    if category in QUALITY_CATEGORIES:
        return category
    if category:
        for candidate in QUALITY_CATEGORIES:
            if candidate in category or category in candidate:
                return candidate
    return "other"


def clamp_score(raw: Any) -> int:
    """Coerce a model score into an int in ``0..100``."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0
    if value != value:  # NaN
        return 0
    return int(round(min(max(value, 0.0), 100.0)))
