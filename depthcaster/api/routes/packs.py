"""
depthcaster.api.routes.packs — Curator packs, subscriptions, favorites
=======================================================================

``/packs/favorites`` and ``/packs/popular`` are declared before
``/packs/{pack_id}`` so they aren't captured by the path parameter.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from depthcaster.api.deps import CurrentUser, get_current_user, get_engine, get_optional_user
from depthcaster.services import pack_service

router = APIRouter(prefix="/packs", tags=["packs"])


class PackCreate(BaseModel):
    name: str
    description: str | None = None
    user_fids: list[int] = Field(min_length=1)
    is_public: bool = True


class PackUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    user_fids: list[int] | None = None
    is_public: bool | None = None


@router.get("")
def list_packs(
    creator_fid: int | None = None,
    search: str | None = None,
    exclude_mine: bool = False,
    limit: int = Query(50, ge=1, le=100),
    user: CurrentUser | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    viewer = user.fid if user else None
    return pack_service.list_packs(
        engine,
        viewer_fid=viewer,
        creator_fid=creator_fid,
        search=search,
        exclude_creator_fid=viewer if exclude_mine else None,
        limit=limit,
    )


@router.post("", status_code=201)
def create_pack(
    body: PackCreate,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return pack_service.create_pack(
        engine, user.fid, body.name, body.user_fids,
        description=body.description, is_public=body.is_public,
    )


@router.get("/favorites")
def favorites(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return pack_service.list_favorites(engine, user.fid)


@router.get("/popular")
def popular(limit: int = Query(10, ge=1, le=50), engine=Depends(get_engine)):
    return pack_service.popular_packs(engine, limit)


@router.get("/subscriptions")
def subscriptions(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"pack_ids": pack_service.list_subscriptions(engine, user.fid)}


@router.get("/{pack_id}")
def get_pack(
    pack_id: int,
    user: CurrentUser | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    return pack_service.get_pack(engine, pack_id, user.fid if user else None)


@router.patch("/{pack_id}")
def update_pack(
    pack_id: int,
    body: PackUpdate,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return pack_service.update_pack(engine, pack_id, user.fid, **body.model_dump(exclude_unset=True))


@router.delete("/{pack_id}")
def delete_pack(
    pack_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    pack_service.delete_pack(engine, pack_id, user.fid)
    return {"deleted": True}


@router.post("/{pack_id}/subscribe")
def subscribe(pack_id: int, user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"subscribed": True, "created": pack_service.subscribe(engine, user.fid, pack_id)}


@router.delete("/{pack_id}/subscribe")
def unsubscribe(pack_id: int, user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"subscribed": False, "removed": pack_service.unsubscribe(engine, user.fid, pack_id)}


@router.post("/{pack_id}/favorite")
def favorite(pack_id: int, user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"favorited": True, "created": pack_service.favorite(engine, user.fid, pack_id)}


@router.delete("/{pack_id}/favorite")
def unfavorite(pack_id: int, user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    return {"favorited": False, "removed": pack_service.unfavorite(engine, user.fid, pack_id)}
