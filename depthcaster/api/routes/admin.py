"""
depthcaster.api.routes.admin — Admin endpoints (JWT + admin role)
==================================================================

Every mutation goes through :func:`rate_limited_admin`; reads use the
plain :func:`require_admin` check.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from depthcaster.api.deps import (
    CurrentUser,
    get_config,
    get_deepseek_factory,
    get_engine,
    get_neynar_factory,
    open_client,
    require_admin,
)
from depthcaster.api.rate_limit import rate_limited_admin
from depthcaster.config import DepthcasterConfig
from depthcaster.constants import ROLE_SUPERADMIN
from depthcaster.errors import UpstreamError
from depthcaster.services import miniapp_service, quality_service, tag_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RoleChange(BaseModel):
    fid: int
    role: str


class TagChange(BaseModel):
    cast_hash: str
    tag: str


class Broadcast(BaseModel):
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    url: str | None = None
    target_fids: list[int] | None = None


def _check_superadmin_grant(admin: CurrentUser, role: str) -> None:
    if role == ROLE_SUPERADMIN and ROLE_SUPERADMIN not in admin.roles:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Only a superadmin can manage the superadmin role")


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
@router.get("/roles")
def list_roles(
    role: str | None = None,
    _admin: CurrentUser = Depends(require_admin),
    engine=Depends(get_engine),
):
    return user_service.list_role_holders(engine, role)


@router.post("/roles", status_code=201)
def grant_role(
    body: RoleChange,
    admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    _check_superadmin_grant(admin, body.role)
    if not user_service.grant_role(engine, body.fid, body.role):
        raise HTTPException(status.HTTP_409_CONFLICT, "User already has this role")
    logger.info("Admin %d granted %s to fid %d", admin.fid, body.role, body.fid)
    return {"fid": body.fid, "role": body.role}


@router.delete("/roles")
def revoke_role(
    body: RoleChange,
    admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    _check_superadmin_grant(admin, body.role)
    user_service.revoke_role(engine, body.fid, body.role)
    logger.info("Admin %d revoked %s from fid %d", admin.fid, body.role, body.fid)
    return {"fid": body.fid, "role": body.role, "revoked": True}


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
@router.post("/tags", status_code=201)
def add_tag(
    body: TagChange,
    admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    return tag_service.add_tag(engine, body.cast_hash, body.tag, admin.fid)


@router.delete("/tags")
def remove_tag(
    body: TagChange,
    _admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    tag_service.remove_tag(engine, body.cast_hash, body.tag)
    return {"removed": True}


# ---------------------------------------------------------------------------
# Quality & pushes
# ---------------------------------------------------------------------------
@router.post("/quality/{cast_hash}")
async def analyze_quality(
    cast_hash: str,
    _admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
    deepseek_factory=Depends(get_deepseek_factory),
):
    """Re-run the LLM quality analysis for a curated cast."""
    async with open_client(deepseek_factory) as deepseek:
        if deepseek is None:
            raise UpstreamError("DeepSeek is not configured")
        analysis = await quality_service.analyze_and_store(engine, deepseek, cast_hash)
    if analysis is None:
        raise UpstreamError("Quality analysis failed")
    return {
        "cast_hash": cast_hash,
        "quality_score": analysis.quality_score,
        "category": analysis.category,
        "reasoning": analysis.reasoning,
    }


@router.post("/miniapp-notifications/send")
async def send_miniapp_notification(
    body: Broadcast,
    admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
    neynar_factory=Depends(get_neynar_factory),
):
    async with open_client(neynar_factory) as neynar:
        result = await miniapp_service.broadcast(
            engine, neynar, body.title, body.body, cfg,
            target_url=body.url, target_fids=body.target_fids,
        )
    logger.info(
        "Admin %d broadcast %r: %d sent, %d failed", admin.fid, body.title,
        result["sent"], result["failed"],
    )
    return result


# Public tag browsing lives on its own router so it isn't admin-gated
public_router = APIRouter(tags=["tags"])


@public_router.get("/tags")
def list_tags(engine=Depends(get_engine)):
    return tag_service.list_tags(engine)


@public_router.get("/tags/{tag}/casts")
def casts_for_tag(tag: str, engine=Depends(get_engine)):
    return {"tag": tag_service.normalize_tag(tag), "cast_hashes": tag_service.casts_for_tag(engine, tag)}


@public_router.get("/casts/{cast_hash}/tags")
def tags_for_cast(cast_hash: str, engine=Depends(get_engine)):
    return {"cast_hash": cast_hash, "tags": tag_service.tags_for_cast(engine, cast_hash)}
