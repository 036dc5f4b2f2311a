"""
depthcaster.api.background — Post-response work for curation & webhooks
=========================================================================

Scheduled with FastAPI ``BackgroundTasks`` so the curator (or Neynar) gets
a response immediately.  Every step logs and carries on: a failing push or
LLM call never undoes a curation that has already been committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from depthcaster.api.deps import open_client
from depthcaster.config import DepthcasterConfig
from depthcaster.database.engine import run_db
from depthcaster.services import miniapp_service, notification_service, quality_service
from depthcaster.services.curation_service import CurationResult
from depthcaster.services.deepseek_client import DeepSeekClient
from depthcaster.services.neynar_client import NeynarClient

logger = logging.getLogger(__name__)


async def after_curation(
    engine,
    cfg: DepthcasterConfig,
    result: CurationResult,
    cast_data: dict[str, Any],
    curator_fid: int,
    neynar_factory: Callable[[], NeynarClient | None],
    deepseek_factory: Callable[[], DeepSeekClient | None],
) -> None:
    """Notify other curators, push to miniapp users, score the cast."""
    try:
        await run_db(
            notification_service.notify_curators_about_new_curation,
            engine, result.cast_hash, cast_data, curator_fid,
        )
    except Exception:
        logger.exception("New-curation notifications failed for %s", result.cast_hash)

    if result.is_first_curation:
        try:
            async with open_client(neynar_factory) as neynar:
                await miniapp_service.notify_new_curated_cast(
                    engine, neynar, result.cast_hash, cast_data, cfg
                )
        except Exception:
            logger.exception("Miniapp notifications failed for %s", result.cast_hash)

        try:
            async with open_client(deepseek_factory) as deepseek:
                await quality_service.analyze_and_store(engine, deepseek, result.cast_hash)
        except Exception:
            logger.exception("Quality analysis failed for %s", result.cast_hash)


async def handle_reply(
    engine,
    curated_hash: str,
    reply: dict[str, Any],
    deepseek_factory: Callable[[], DeepSeekClient | None],
) -> None:
    """Score a reply to a curated cast and notify its curators if it's good."""
    try:
        async with open_client(deepseek_factory) as deepseek:
            score = await quality_service.analyze_reply(deepseek, reply)
        if score is None:
            logger.info("Reply %s not scored; no notifications", reply.get("hash"))
            return
        created = await run_db(
            notification_service.notify_curators_about_quality_reply,
            engine, curated_hash, reply.get("hash"), reply, score,
        )
        logger.info("Reply %s scored %d → %d notifications", reply.get("hash"), score, created)
    except Exception:
        logger.exception("Reply handling failed for %s", reply.get("hash"))
