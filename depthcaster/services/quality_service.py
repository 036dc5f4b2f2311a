"""
depthcaster.services.quality_service — Run & persist quality analysis
======================================================================

Glue between the DeepSeek client and the ``curated_casts`` table.  Runs as
a background task after curation and on demand from the admin API.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from depthcaster.database.engine import run_db
from depthcaster.errors import NotFoundError
from depthcaster.services import curation_service

if TYPE_CHECKING:
    from depthcaster.services.deepseek_client import DeepSeekClient, QualityAnalysis

logger = logging.getLogger(__name__)


def _load_cast_data(engine, cast_hash: str) -> dict[str, Any]:
    with Session(engine) as session:
        cast = curation_service.find_curated_cast(session, cast_hash)
        if cast is None:
            raise NotFoundError(f"Cast {cast_hash} is not curated")
        return cast.cast_data


async def analyze_and_store(
    engine, deepseek: DeepSeekClient | None, cast_hash: str
) -> QualityAnalysis | None:
    """Analyze a curated cast and store its score.  ``None`` if skipped."""
    cast_data = await run_db(_load_cast_data, engine, cast_hash)
    if deepseek is None:
        logger.warning("DEEPSEEK_API_KEY not set; skipping quality analysis of %s", cast_hash)
        return None

    analysis = await deepseek.analyze_cast_quality(cast_data)
    if analysis is None:
        logger.warning("Quality analysis of %s produced no result", cast_hash)
        return None

    await run_db(curation_service.update_quality, engine, cast_hash, analysis)
    logger.info(
        "Stored quality for %s: %d (%s)", cast_hash, analysis.quality_score, analysis.category
    )
    return analysis


async def analyze_reply(deepseek: DeepSeekClient | None, reply: dict[str, Any]) -> int | None:
    if deepseek is None:
        return None
    analysis = await deepseek.analyze_cast_quality(reply)
    return analysis.quality_score if analysis else None
