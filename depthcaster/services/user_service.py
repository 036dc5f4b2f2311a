"""
depthcaster.services.user_service — Users, roles & preferences
===============================================================

Users are keyed by Farcaster FID and created lazily: the first time we
see a signer, a curator, or a cast author.  Roles live in ``user_roles``;
``admin`` and ``superadmin`` imply admin rights but **not** curation
rights (curators are granted explicitly).
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt
from sqlalchemy import select
from sqlalchemy.orm import Session

from depthcaster.constants import (
    ADMIN_ROLES,
    ALL_ROLES,
    DEFAULT_QUALITY_REPLY_THRESHOLD,
    FREQUENCY_ALL,
    ROLE_CURATOR,
    ROLE_PLUS,
    ROLE_SUPERADMIN,
)
from depthcaster.database.engine import get_session
from depthcaster.database.models import User, UserRole
from depthcaster.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: dict[str, Any] = {
    "notifyOnQualityReply": True,
    "qualityReplyThreshold": DEFAULT_QUALITY_REPLY_THRESHOLD,
    "notifyOnCurated": False,
    "notifyOnLiked": False,
    "notifyOnRecast": False,
    "notificationFrequency": FREQUENCY_ALL,
}

_PROFILE_FIELDS = ("username", "display_name", "pfp_url", "signer_uuid")


class PreferencesUpdate(BaseModel):
    """Partial preferences update.  Omitted or null fields keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    notifyOnQualityReply: StrictBool | None = None
    qualityReplyThreshold: Annotated[StrictInt, Field(ge=0, le=100)] | None = None
    notifyOnCurated: StrictBool | None = None
    notifyOnLiked: StrictBool | None = None
    notifyOnRecast: StrictBool | None = None
    notificationFrequency: Literal["all", "daily", "weekly"] | None = None


# ---------------------------------------------------------------------------
# Session-level helpers (shared with other services inside one transaction)
# ---------------------------------------------------------------------------
def ensure_user(session: Session, fid: int, **profile: Any) -> User:
    """Get or create the user row for *fid*, filling in any profile fields."""
    user = session.get(User, fid)
    if user is None:
        user = User(fid=fid)
        session.add(user)
    for key in _PROFILE_FIELDS:
        value = profile.get(key)
        if value is not None:
            setattr(user, key, value)
    session.flush()
    return user


def roles_for(session: Session, fid: int) -> set[str]:
    return set(session.scalars(select(UserRole.role).where(UserRole.user_fid == fid)))


# ---------------------------------------------------------------------------
# Role predicates
# ---------------------------------------------------------------------------
def is_admin(roles: set[str]) -> bool:
    return bool(roles & ADMIN_ROLES)


def is_superadmin(roles: set[str]) -> bool:
    return ROLE_SUPERADMIN in roles


def is_curator(roles: set[str]) -> bool:
    return ROLE_CURATOR in roles


def has_plus(roles: set[str]) -> bool:
    return ROLE_PLUS in roles


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def upsert_user(engine, fid: int, **profile: Any) -> User:
    with get_session(engine) as session:
        return ensure_user(session, fid, **profile)


def get_user(engine, fid: int) -> User | None:
    with Session(engine, expire_on_commit=False) as session:
        return session.get(User, fid)


def get_user_roles(engine, fid: int) -> set[str]:
    with Session(engine) as session:
        return roles_for(session, fid)


def grant_role(engine, fid: int, role: str) -> bool:
    """Grant *role* to *fid*.  Returns False if it was already granted."""
    if role not in ALL_ROLES:
        raise ValidationError(f"Unknown role: {role}")
    with get_session(engine) as session:
        ensure_user(session, fid)
        if role in roles_for(session, fid):
            return False
        session.add(UserRole(user_fid=fid, role=role))
    logger.info("Granted role %s to fid %d", role, fid)
    return True


def revoke_role(engine, fid: int, role: str) -> None:
    with get_session(engine) as session:
        row = session.scalar(
            select(UserRole).where(UserRole.user_fid == fid, UserRole.role == role)
        )
        if row is None:
            raise NotFoundError(f"fid {fid} does not have role {role}")
        session.delete(row)
    logger.info("Revoked role %s from fid %d", role, fid)


def list_role_holders(engine, role: str | None = None) -> list[dict[str, Any]]:
    stmt = select(UserRole.user_fid, UserRole.role, User.username).join(
        User, User.fid == UserRole.user_fid
    )
    if role:
        stmt = stmt.where(UserRole.role == role)
    with Session(engine) as session:
        rows = session.execute(stmt.order_by(UserRole.user_fid, UserRole.role)).all()
    return [{"fid": fid, "role": r, "username": username} for fid, r, username in rows]


def merge_preferences(stored: dict | None) -> dict[str, Any]:
    """Stored preferences over the defaults.  Invalid stored values fall back."""
    merged = dict(DEFAULT_PREFERENCES)
    if not isinstance(stored, dict):
        return merged
    for key, value in stored.items():
        if value is None:
            continue
        try:
            PreferencesUpdate.model_validate({key: value})
        except pydantic.ValidationError:
            logger.warning("Ignoring invalid stored preference %s=%r", key, value)
            continue
        merged[key] = value
    return merged


def get_preferences(engine, fid: int) -> dict[str, Any]:
    user = get_user(engine, fid)
    return merge_preferences(user.preferences if user else None)


def update_preferences(engine, fid: int, updates: dict[str, Any]) -> dict[str, Any]:
    """Merge *updates* into the stored preferences and return the result."""
    try:
        changes = PreferencesUpdate.model_validate(updates).model_dump(exclude_none=True)
    except pydantic.ValidationError as exc:
        fields = ", ".join(".".join(map(str, err["loc"])) or "body" for err in exc.errors())
        raise ValidationError(f"Invalid preferences: {fields}") from exc

    with get_session(engine) as session:
        user = ensure_user(session, fid)
        # Reassign so SQLAlchemy sees the JSONB change
        user.preferences = {**(user.preferences or {}), **changes}
        return merge_preferences(user.preferences)
