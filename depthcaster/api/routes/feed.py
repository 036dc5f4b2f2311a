"""
depthcaster.api.routes.feed — Curated, pack, miniapp & external feeds
======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from depthcaster.api.deps import (
    CurrentUser,
    get_config,
    get_current_user,
    get_engine,
    get_neynar_factory,
    get_optional_user,
    open_client,
)
from depthcaster.config import DepthcasterConfig
from depthcaster.engine.pagination import clamp_limit
from depthcaster.errors import UpstreamError
from depthcaster.services import feed_service

router = APIRouter(tags=["feed"])


@router.get("/feed/curated")
def curated_feed(
    cursor: str | None = None,
    limit: int | None = Query(None, ge=1),
    min_quality: int | None = Query(None, ge=0, le=100),
    category: str | None = None,
    curator_fid: list[int] | None = Query(None),
    author_fid: int | None = None,
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
):
    return feed_service.get_curated_feed(
        engine,
        cursor=cursor,
        limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size),
        min_quality=min_quality,
        category=category,
        curator_fids=curator_fid,
        author_fid=author_fid,
    )


@router.get("/feed/packs")
def pack_feed(
    cursor: str | None = None,
    limit: int | None = Query(None, ge=1),
    min_quality: int | None = Query(None, ge=0, le=100),
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
):
    """Curated casts from curators in the caller's subscribed packs."""
    return feed_service.get_pack_feed(
        engine,
        user.fid,
        cursor=cursor,
        limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size),
        min_quality=min_quality,
    )


@router.get("/feed/miniapp")
def miniapp_feed(
    limit: int | None = Query(None, ge=1),
    min_quality: int | None = Query(None, ge=0, le=100),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
):
    items = feed_service.get_miniapp_feed(
        engine,
        limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size),
        min_quality=cfg.miniapp_min_quality if min_quality is None else min_quality,
    )
    return {"items": items}


@router.get("/feed/external")
async def external_feed(
    feed_type: str = "curated",
    cursor: str | None = None,
    limit: int | None = Query(None, ge=1),
    user: CurrentUser | None = Depends(get_optional_user),
    neynar_factory=Depends(get_neynar_factory),
    cfg: DepthcasterConfig = Depends(get_config),
):
    async with open_client(neynar_factory) as neynar:
        if neynar is None:
            raise UpstreamError("Neynar is not configured")
        return await feed_service.assemble_external_feed(
            neynar,
            feed_type,
            cfg,
            viewer_fid=user.fid if user else None,
            cursor=cursor,
            limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size),
        )


@router.get("/users/{fid}/curated-casts")
def user_curated_casts(
    fid: int,
    cursor: str | None = None,
    limit: int | None = Query(None, ge=1),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
):
    return feed_service.get_user_curated_casts(
        engine, fid, cursor=cursor, limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size)
    )
