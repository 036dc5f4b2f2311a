"""
depthcaster.api.rate_limit — Per-Admin Mutation Rate Limiting
==============================================================

Admin mutations (role grants, tags, collections, broadcasts) are limited
per FID over a sliding window, 30 per minute unless ``config.yaml`` says
otherwise.  Each mutation is a row in ``admin_rate_limit_events``, so the
limit survives restarts and holds across workers.

A single :meth:`AdminRateLimiter.hit` prunes, counts and records in one
transaction.  Allowed responses carry ``X-RateLimit-Limit`` and
``X-RateLimit-Remaining``; refused ones are HTTP 429 with ``Retry-After``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy import Engine, delete, select

from depthcaster.api.deps import CurrentUser, get_config, get_engine, require_admin
from depthcaster.config import DepthcasterConfig
from depthcaster.database.engine import get_session, run_db
from depthcaster.database.models import AdminRateLimitEvent

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 30
DEFAULT_WINDOW_SECONDS = 60

_MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int  # seconds; 0 when allowed


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class AdminRateLimiter:
    """Sliding-window mutation counter keyed by admin FID."""

    def __init__(
        self,
        engine: Engine,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        self.engine = engine
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def hit(self, fid: int, now: datetime | None = None) -> RateLimitDecision:
        """Count one mutation by *fid* if it fits in the window.

        A refused mutation is not recorded, so a client hammering the API
        does not push its own reset further out.
        """
        now = now or datetime.now(UTC)
        window = timedelta(seconds=self.window_seconds)

        with get_session(self.engine) as session:
            session.execute(
                delete(AdminRateLimitEvent).where(
                    AdminRateLimitEvent.admin_fid == fid,
                    AdminRateLimitEvent.timestamp <= now - window,
                )
            )
            recent = session.scalars(
                select(AdminRateLimitEvent.timestamp)
                .where(AdminRateLimitEvent.admin_fid == fid)
                .order_by(AdminRateLimitEvent.timestamp.asc())
            ).all()

            if len(recent) >= self.max_requests:
                # The window frees up when the oldest counted mutation ages out
                wait = (_aware(recent[0]) + window - now).total_seconds()
                return RateLimitDecision(False, self.max_requests, 0, max(1, int(wait) + 1))

            session.add(AdminRateLimitEvent(admin_fid=fid, timestamp=now))

        return RateLimitDecision(True, self.max_requests, self.max_requests - len(recent) - 1, 0)

    def reset(self, fid: int | None = None) -> None:
        """Forget recorded mutations for *fid*, or for everyone."""
        stmt = delete(AdminRateLimitEvent)
        if fid is not None:
            stmt = stmt.where(AdminRateLimitEvent.admin_fid == fid)
        with get_session(self.engine) as session:
            session.execute(stmt)


# ---------------------------------------------------------------------------
# Process-wide limiter
# ---------------------------------------------------------------------------
_limiter: AdminRateLimiter | None = None


def configure_rate_limiter(engine: Engine, cfg: DepthcasterConfig | None = None) -> AdminRateLimiter:
    global _limiter
    if cfg is None:
        _limiter = AdminRateLimiter(engine)
    else:
        _limiter = AdminRateLimiter(engine, cfg.admin_rate_limit, cfg.admin_rate_window_seconds)
    return _limiter


def get_rate_limiter(engine: Engine, cfg: DepthcasterConfig | None = None) -> AdminRateLimiter:
    """The limiter bound to *engine*, configured on first use."""
    if _limiter is None or _limiter.engine is not engine:
        return configure_rate_limiter(engine, cfg)
    return _limiter


# ---------------------------------------------------------------------------
# FastAPI dependency, chained after require_admin
# ---------------------------------------------------------------------------
async def rate_limited_admin(
    request: Request,
    response: Response,
    admin: CurrentUser = Depends(require_admin),
    engine: Engine = Depends(get_engine),
    cfg: DepthcasterConfig = Depends(get_config),
) -> CurrentUser:
    """Admin check plus the per-admin mutation limit.

    GET/HEAD/OPTIONS pass through uncounted.
    """
    if request.method not in _MUTATION_METHODS:
        return admin

    limiter = get_rate_limiter(engine, cfg)
    decision = await run_db(limiter.hit, admin.fid)
    if not decision.allowed:
        logger.warning(
            "Admin fid %d hit the mutation limit (%d per %ds); retry in %ds",
            admin.fid, decision.limit, limiter.window_seconds, decision.retry_after,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"At most {decision.limit} admin changes per {limiter.window_seconds}s.",
                "retry_after": decision.retry_after,
            },
            headers={"Retry-After": str(decision.retry_after)},
        )

    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    return admin
