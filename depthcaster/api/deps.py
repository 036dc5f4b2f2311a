"""
depthcaster.api.deps — FastAPI dependency injection
=====================================================
"""

from __future__ import annotations

import hmac
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Annotated, TypeVar

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from depthcaster.config import DepthcasterConfig, load_config
from depthcaster.database.engine import create_db_engine
from depthcaster.services.deepseek_client import DeepSeekClient
from depthcaster.services.neynar_client import NeynarClient
from depthcaster.services.user_service import is_admin, is_curator, roles_for

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "depthcaster-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=7)


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: openssl rand -base64 48"
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> DepthcasterConfig:
    return load_config()


# ---------------------------------------------------------------------------
# Outbound API clients
# ---------------------------------------------------------------------------
# Each unit of work (request or background task) opens and closes its own client.
C = TypeVar("C", NeynarClient, DeepSeekClient)


def neynar_from_env() -> NeynarClient | None:
    api_key = os.getenv("NEYNAR_API_KEY", "").strip()
    return NeynarClient(api_key) if api_key else None


def deepseek_from_env() -> DeepSeekClient | None:
    api_key = os.getenv("DEEPSEEK_API_KEY", "").strip()
    return DeepSeekClient(api_key) if api_key else None


def get_neynar_factory() -> Callable[[], NeynarClient | None]:
    return neynar_from_env


def get_deepseek_factory() -> Callable[[], DeepSeekClient | None]:
    return deepseek_from_env


@asynccontextmanager
async def open_client(factory: Callable[[], C | None]) -> AsyncIterator[C | None]:
    """Build a client from *factory* and close it on exit.  Yields None if unconfigured."""
    client = factory()
    try:
        yield client
    finally:
        if client is not None:
            await client.aclose()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CurrentUser:
    fid: int
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return is_admin(set(self.roles))

    @property
    def is_curator(self) -> bool:
        return is_curator(set(self.roles))


def issue_token(fid: int) -> str:
    payload = {"sub": str(fid), "exp": datetime.now(UTC) + TOKEN_TTL}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _decode_fid(authorization: str) -> int:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def _load_user(engine: Engine, fid: int) -> CurrentUser:
    with Session(engine) as session:
        return CurrentUser(fid=fid, roles=frozenset(roles_for(session, fid)))


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> CurrentUser:
    """Validate the bearer JWT and resolve the caller's roles. 401 if invalid."""
    if not authorization:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    return _load_user(engine, _decode_fid(authorization))


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> CurrentUser | None:
    """Like :func:`get_current_user`, but anonymous requests yield ``None``."""
    if not authorization:
        return None
    return _load_user(engine, _decode_fid(authorization))


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin role required")
    return user


def require_curator(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_curator:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Curator role required")
    return user


# ---------------------------------------------------------------------------
# Webhooks & cron
# ---------------------------------------------------------------------------
def webhook_secret() -> str | None:
    return os.getenv("WEBHOOK_SECRET", "").strip() or None


def verify_cron(authorization: Annotated[str | None, Header()] = None) -> None:
    """Require ``Authorization: Bearer $CRON_SECRET`` when the secret is set."""
    cron_secret = os.getenv("CRON_SECRET", "").strip()
    if not cron_secret:
        logger.warning("CRON_SECRET not set; allowing cron request")
        return
    if not hmac.compare_digest(authorization or "", f"Bearer {cron_secret}"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
