"""
depthcaster.api.routes.cron — Scheduled digest delivery
========================================================

Hit by an external scheduler (Vercel cron, systemd timer, ...) once a day
and once a week at ``notification_hour_utc``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from depthcaster.api.deps import get_config, get_engine, get_neynar_factory, open_client, verify_cron
from depthcaster.config import DepthcasterConfig
from depthcaster.errors import ValidationError
from depthcaster.services import miniapp_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron)])


@router.post("/send-notifications/{frequency}")
async def send_notifications(
    frequency: str,
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
    neynar_factory=Depends(get_neynar_factory),
):
    if frequency not in ("daily", "weekly"):
        raise ValidationError(f"Unknown digest frequency: {frequency}")
    async with open_client(neynar_factory) as neynar:
        stats = await miniapp_service.send_batched_notifications(engine, neynar, frequency, cfg)
    logger.info("Cron %s digest finished: %s", frequency, stats)
    return stats
