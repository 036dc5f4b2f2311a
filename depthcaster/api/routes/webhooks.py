"""
depthcaster.api.routes.webhooks — Neynar webhook receivers
===========================================================

Both endpoints read the raw body first: the HMAC in ``X-Neynar-Signature``
is computed over the exact bytes Neynar sent, so the body must not be
re-serialised before verification.  When ``WEBHOOK_SECRET`` is unset the
signature check is skipped (local development) with a warning.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status

from depthcaster.api.background import after_curation, handle_reply
from depthcaster.api.deps import (
    get_config,
    get_deepseek_factory,
    get_engine,
    get_neynar_factory,
    open_client,
    webhook_secret,
)
from depthcaster.config import DepthcasterConfig
from depthcaster.database.engine import run_db
from depthcaster.engine.quality import meets_quality_threshold
from depthcaster.engine.signatures import verify_webhook_signature
from depthcaster.errors import ValidationError
from depthcaster.services import curation_service, notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

# Neynar reaction_type: 1 = like, 2 = recast
_REACTIONS = {1: "liked", 2: "recast", "like": "liked", "recast": "recast"}


async def _verified_payload(request: Request, signature: str | None) -> dict[str, Any]:
    raw = await request.body()
    secret = webhook_secret()
    if secret:
        if not signature:
            logger.warning("Webhook rejected: missing X-Neynar-Signature")
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing signature")
        if not verify_webhook_signature(raw, signature, secret):
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid signature")
    else:
        logger.warning("WEBHOOK_SECRET not set; accepting unsigned webhook")

    try:
        payload = json.loads(raw or b"{}")
    except json.JSONDecodeError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return payload


@router.post("/curate", status_code=201)
async def curate_webhook(
    request: Request,
    background: BackgroundTasks,
    x_neynar_signature: str | None = Header(None),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
    neynar_factory=Depends(get_neynar_factory),
    deepseek_factory=Depends(get_deepseek_factory),
):
    """Curate the cast (or, for a reply, its parent) named in the payload."""
    payload = await _verified_payload(request, x_neynar_signature)

    async with open_client(neynar_factory) as neynar:
        cast_hash, cast_data, curator_fid = await curation_service.resolve_webhook_target(
            payload, neynar
        )

    result = await run_db(
        curation_service.curate_cast, engine, cast_hash, cast_data, curator_fid
    )
    background.add_task(
        after_curation, engine, cfg, result, cast_data, curator_fid,
        neynar_factory, deepseek_factory,
    )
    logger.info("Webhook curation of %s by fid %d", cast_hash, curator_fid)
    return {
        "cast_hash": result.cast_hash,
        "curator_fid": curator_fid,
        "is_first_curation": result.is_first_curation,
    }


@router.post("/neynar")
async def neynar_events(
    request: Request,
    background: BackgroundTasks,
    x_neynar_signature: str | None = Header(None),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
    deepseek_factory=Depends(get_deepseek_factory),
):
    """Replies and reactions on curated casts."""
    payload = await _verified_payload(request, x_neynar_signature)
    event = payload.get("type")
    data = payload.get("data") or {}

    if event == "cast.created":
        parent_hash = data.get("parent_hash")
        if not parent_hash or not await run_db(curation_service.is_curated, engine, parent_hash):
            return {"status": "ignored"}
        if not meets_quality_threshold(data, cfg.hidden_bots):
            logger.info("Reply %s is below the quality bar; not scored", data.get("hash"))
            return {"status": "filtered"}
        background.add_task(handle_reply, engine, parent_hash, data, deepseek_factory)
        return {"status": "queued"}

    if event == "reaction.created":
        interaction = _REACTIONS.get(data.get("reaction_type"))
        cast = data.get("cast") or {}
        cast_hash = cast.get("hash")
        user_fid = (data.get("user") or {}).get("fid")
        if interaction is None or not cast_hash or not user_fid:
            return {"status": "ignored"}
        if not await run_db(curation_service.is_curated, engine, cast_hash):
            return {"status": "ignored"}
        created = await run_db(
            notification_service.notify_curators_about_interaction,
            engine, cast_hash, cast, interaction, int(user_fid),
        )
        return {"status": "processed", "notifications": created}

    logger.info("Ignoring Neynar event %r", event)
    return {"status": "ignored"}
