"""
depthcaster.api.routes.curation — Curate / uncurate casts
==========================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from depthcaster.api.background import after_curation
from depthcaster.api.deps import (
    CurrentUser,
    get_config,
    get_deepseek_factory,
    get_engine,
    get_neynar_factory,
    require_curator,
)
from depthcaster.config import DepthcasterConfig
from depthcaster.services import curation_service

router = APIRouter(prefix="/curate", tags=["curation"])


class CurateRequest(BaseModel):
    cast_hash: str
    cast_data: dict[str, Any]


@router.post("", status_code=201)
def curate(
    body: CurateRequest,
    background: BackgroundTasks,
    curator: CurrentUser = Depends(require_curator),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
    neynar_factory=Depends(get_neynar_factory),
    deepseek_factory=Depends(get_deepseek_factory),
):
    result = curation_service.curate_cast(engine, body.cast_hash, body.cast_data, curator.fid)
    background.add_task(
        after_curation, engine, cfg, result, body.cast_data, curator.fid,
        neynar_factory, deepseek_factory,
    )
    return {
        "cast_hash": result.cast_hash,
        "is_first_curation": result.is_first_curation,
        "curator_fids": result.curator_fids,
    }


@router.delete("/{cast_hash}")
def uncurate(
    cast_hash: str,
    curator: CurrentUser = Depends(require_curator),
    engine=Depends(get_engine),
):
    return curation_service.uncurate_cast(engine, cast_hash, curator.fid)


@router.get("/{cast_hash}")
def curation_info(cast_hash: str, engine=Depends(get_engine)):
    return curation_service.get_curation_info(engine, cast_hash)
