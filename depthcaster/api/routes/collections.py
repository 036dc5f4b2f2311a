"""
depthcaster.api.routes.collections — Named cast collections
============================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from depthcaster.api.deps import (
    CurrentUser,
    get_config,
    get_current_user,
    get_engine,
    get_optional_user,
)
from depthcaster.api.rate_limit import rate_limited_admin
from depthcaster.config import DepthcasterConfig
from depthcaster.engine.pagination import clamp_limit
from depthcaster.services import collection_service

router = APIRouter(prefix="/collections", tags=["collections"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CollectionCreate(BaseModel):
    name: str
    display_name: str | None = None
    description: str | None = None
    access_type: str = "open"
    gated_user_id: int | None = None
    gating_rule: dict[str, Any] | None = None
    display_type: str = "text"
    order_mode: str = "manual"
    order_direction: str = "desc"


class CollectionUpdate(BaseModel):
    display_name: str | None = None
    description: str | None = None
    access_type: str | None = None
    gated_user_id: int | None = None
    gating_rule: dict[str, Any] | None = None
    display_type: str | None = None
    order_mode: str | None = None
    order_direction: str | None = None


class CollectionCastAdd(BaseModel):
    cast_hash: str
    cast_data: dict[str, Any] | None = None


class Reorder(BaseModel):
    cast_hashes: list[str] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_collections(
    user: CurrentUser | None = Depends(get_optional_user),
    engine=Depends(get_engine),
):
    """Collections the caller may add to (open ones when anonymous)."""
    collections = collection_service.list_accessible_collections(
        engine, user.fid if user else None
    )
    return [collection_service.serialize_collection(c) for c in collections]


@router.post("", status_code=201)
def create_collection(
    body: CollectionCreate,
    admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    collection = collection_service.create_collection(
        engine, creator_fid=admin.fid, **body.model_dump()
    )
    return collection_service.serialize_collection(collection)


@router.get("/{name}")
def get_collection(
    name: str,
    cursor: str | None = None,
    limit: int | None = Query(None, ge=1),
    engine=Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
):
    return collection_service.list_collection_casts(
        engine, name, cursor=cursor, limit=clamp_limit(limit, cfg.feed_page_size, cfg.max_page_size)
    )


@router.patch("/{name}")
def update_collection(
    name: str,
    body: CollectionUpdate,
    _admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    """Partial update; only the fields sent are changed."""
    collection = collection_service.update_collection(
        engine, name, body.model_dump(exclude_unset=True)
    )
    return collection_service.serialize_collection(collection)


@router.delete("/{name}")
def delete_collection(
    name: str,
    _admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    collection_service.delete_collection(engine, name)
    return {"deleted": True}


@router.post("/{name}/casts", status_code=201)
def add_cast(
    name: str,
    body: CollectionCastAdd,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    entry = collection_service.add_cast(engine, name, body.cast_hash, user.fid, body.cast_data)
    return {"cast_hash": entry.cast_hash, "order": entry.order, "curator_fid": entry.curator_fid}


@router.delete("/{name}/casts/{cast_hash}")
def remove_cast(
    name: str,
    cast_hash: str,
    user: CurrentUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    collection_service.remove_cast(engine, name, cast_hash, user.fid)
    return {"removed": True}


@router.post("/{name}/reorder")
def reorder(
    name: str,
    body: Reorder,
    _admin: CurrentUser = Depends(rate_limited_admin),
    engine=Depends(get_engine),
):
    collection_service.reorder_casts(engine, name, body.cast_hashes)
    return {"reordered": len(body.cast_hashes)}
