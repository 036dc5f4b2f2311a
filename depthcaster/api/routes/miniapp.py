"""
depthcaster.api.routes.miniapp — Miniapp install tracking
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from depthcaster.api.deps import CurrentUser, get_current_user, get_engine
from depthcaster.services import miniapp_service

router = APIRouter(prefix="/miniapp", tags=["miniapp"])


@router.post("/install")
def install(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"installed": True, "created": miniapp_service.record_installation(engine, user.fid)}


@router.delete("/install")
def uninstall(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"installed": False, "removed": miniapp_service.remove_installation(engine, user.fid)}
