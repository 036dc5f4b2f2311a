"""
depthcaster.api.routes.notifications — In-app inbox & preferences
==================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from depthcaster.api.deps import CurrentUser, get_config, get_current_user, get_engine
from depthcaster.config import DepthcasterConfig
from depthcaster.engine.pagination import clamp_limit
from depthcaster.services import notification_service, user_service

router = APIRouter(tags=["notifications"])


class SeenRequest(BaseModel):
    ids: list[int] | None = None  # None marks everything read


class DeleteRequest(BaseModel):
    ids: list[int]


@router.get("/notifications")
def list_notifications(
    cursor: str | None = None,
    limit: int | None = Query(None, ge=1),
    unread_only: bool = False,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
):
    return notification_service.list_notifications(
        engine,
        user.fid,
        cursor=cursor,
        limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size),
        unread_only=unread_only,
    )


@router.get("/notifications/count")
def unread_count(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"unread": notification_service.unread_count(engine, user.fid)}


@router.post("/notifications/seen")
def mark_seen(
    body: SeenRequest,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"updated": notification_service.mark_seen(engine, user.fid, body.ids)}


@router.post("/notifications/delete")
def delete_notifications(
    body: DeleteRequest,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return {"deleted": notification_service.delete_notifications(engine, user.fid, body.ids)}


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------
@router.get("/users/me/preferences")
def get_preferences(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return user_service.get_preferences(engine, user.fid)


@router.put("/users/me/preferences")
def update_preferences(
    body: user_service.PreferencesUpdate,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return user_service.update_preferences(engine, user.fid, body.model_dump(exclude_none=True))
