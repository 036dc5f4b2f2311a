"""
depthcaster.api.auth — Farcaster signer sign-in + JWT issuance
===============================================================

The client creates (or reuses) a Neynar managed signer and posts its UUID.
We look the signer up with Neynar; an ``approved`` signer with a FID proves
the caller controls that account.  The user row is upserted with the signer
and a JWT whose ``sub`` is the FID is returned.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from depthcaster.api.deps import (
    CurrentUser,
    get_current_user,
    get_engine,
    get_neynar_factory,
    issue_token,
    open_client,
)
from depthcaster.database.engine import run_db
from depthcaster.errors import UpstreamError
from depthcaster.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class SignInRequest(BaseModel):
    signer_uuid: str


def _profile(signer: dict[str, Any]) -> dict[str, Any]:
    user = signer.get("user") or {}
    return {
        "username": user.get("username"),
        "display_name": user.get("display_name"),
        "pfp_url": user.get("pfp_url"),
    }


@router.post("/signin")
async def signin(
    body: SignInRequest,
    engine=Depends(get_engine),
    neynar_factory=Depends(get_neynar_factory),
):
    """Exchange an approved Neynar signer for a session token."""
    async with open_client(neynar_factory) as neynar:
        if neynar is None:
            raise HTTPException(500, "Neynar is not configured: missing NEYNAR_API_KEY")
        try:
            signer = await neynar.lookup_signer(body.signer_uuid)
        except UpstreamError:
            logger.warning("Signer lookup failed for %s", body.signer_uuid)
            raise HTTPException(401, "Unknown signer")

    fid = signer.get("fid")
    if signer.get("status") != "approved" or not fid:
        raise HTTPException(401, "Signer is not approved")

    fid = int(fid)
    await run_db(
        user_service.upsert_user, engine, fid, signer_uuid=body.signer_uuid, **_profile(signer)
    )
    roles = await run_db(user_service.get_user_roles, engine, fid)
    logger.info("fid %d signed in", fid)
    return {"token": issue_token(fid), "fid": fid, "roles": sorted(roles)}


@router.get("/me")
def me(user: CurrentUser = Depends(get_current_user), engine=Depends(get_engine)):
    """Return the current user's profile and roles."""
    row = user_service.get_user(engine, user.fid)
    return {
        "fid": user.fid,
        "username": row.username if row else None,
        "display_name": row.display_name if row else None,
        "pfp_url": row.pfp_url if row else None,
        "roles": sorted(user.roles),
        "is_admin": user.is_admin,
        "is_curator": user.is_curator,
    }
