"""
depthcaster.services.miniapp_service — Miniapp push & digest batching
======================================================================

When a cast is curated for the first time, every user who installed the
Farcaster miniapp hears about it, according to their
``notificationFrequency`` preference:

- ``all``    — one immediate push, sent to everyone in a single Neynar call
- ``daily``  — a queue row scheduled for tomorrow at the notification hour
- ``weekly`` — a queue row scheduled for next Monday at the notification hour

The cron endpoints then call :func:`send_batched_notifications`, which
turns each user's due queue rows into one summary push ("3 new curated
casts today").  Rows are only marked sent when the push succeeded, so a
failed batch is retried on the next run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from depthcaster.constants import (
    FREQUENCY_ALL,
    FREQUENCY_DAILY,
    FREQUENCY_WEEKLY,
    MINIAPP_BODY_MAX,
    MINIAPP_TITLE_MAX,
    NOTIFICATION_FREQUENCIES,
)
from depthcaster.database.engine import get_session, run_db
from depthcaster.database.models import MiniappInstallation, MiniappNotificationQueue, User
from depthcaster.errors import UpstreamError, ValidationError
from depthcaster.services.user_service import ensure_user, merge_preferences

if TYPE_CHECKING:
    from depthcaster.config import DepthcasterConfig
    from depthcaster.services.neynar_client import NeynarClient

logger = logging.getLogger(__name__)

_ELLIPSIS = "..."
_DELIVERED = frozenset({"success", "delivered"})


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - len(_ELLIPSIS)] + _ELLIPSIS


def build_notification_payload(
    target_fids: list[int],
    title: str,
    body: str,
    target_url: str | None,
    app_url: str,
) -> dict[str, Any]:
    """Validate and truncate a Neynar frame-notification request body."""
    if not title or not title.strip():
        raise ValidationError("Notification title cannot be empty")
    if not body or not body.strip():
        raise ValidationError("Notification body cannot be empty")

    url = target_url or app_url
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid target_url: {url!r}")

    return {
        "target_fids": list(target_fids),
        "notification": {
            "title": _truncate(title.strip(), MINIAPP_TITLE_MAX),
            "body": _truncate(body.strip(), MINIAPP_BODY_MAX),
            "target_url": url,
        },
    }


def compute_scheduled_for(now: datetime, frequency: str, hour: int = 9) -> datetime:
    """Next delivery slot: tomorrow (daily) or next Monday (weekly), UTC."""
    now = now.astimezone(UTC) if now.tzinfo else now.replace(tzinfo=UTC)
    if frequency == FREQUENCY_DAILY:
        days = 1
    elif frequency == FREQUENCY_WEEKLY:
        # Strictly after today: a Monday schedules the following Monday
        days = 7 - now.weekday()
    else:
        raise ValidationError(f"Cannot schedule frequency {frequency!r}")
    target = now + timedelta(days=days)
    return target.replace(hour=hour, minute=0, second=0, microsecond=0)


def group_by_frequency(
    fids: list[int], preferences_by_fid: dict[int, dict | None]
) -> dict[str, list[int]]:
    groups: dict[str, list[int]] = {f: [] for f in NOTIFICATION_FREQUENCIES}
    for fid in fids:
        frequency = merge_preferences(preferences_by_fid.get(fid))["notificationFrequency"]
        groups[frequency].append(fid)
    return groups


def count_deliveries(response: dict[str, Any]) -> tuple[int, int]:
    """Return ``(sent, failed)`` from a publish response."""
    deliveries = (
        response.get("notification_deliveries")
        or (response.get("result") or {}).get("notification_deliveries")
        or []
    )
    sent = sum(1 for d in deliveries if (d or {}).get("status") in _DELIVERED)
    return sent, len(deliveries) - sent


# ---------------------------------------------------------------------------
# Installations
# ---------------------------------------------------------------------------
def record_installation(engine, fid: int) -> bool:
    """Returns False if the user was already recorded."""
    with get_session(engine) as session:
        existing = session.scalar(
            select(MiniappInstallation.id).where(MiniappInstallation.user_fid == fid)
        )
        if existing is not None:
            return False
        ensure_user(session, fid)
        session.add(MiniappInstallation(user_fid=fid))
    logger.info("Miniapp installed by fid %d", fid)
    return True


def remove_installation(engine, fid: int) -> bool:
    with get_session(engine) as session:
        row = session.scalar(select(MiniappInstallation).where(MiniappInstallation.user_fid == fid))
        if row is None:
            return False
        session.delete(row)
    logger.info("Miniapp removed by fid %d", fid)
    return True


def installed_fids_from_db(engine) -> list[int]:
    with Session(engine) as session:
        return list(session.scalars(
            select(MiniappInstallation.user_fid).order_by(MiniappInstallation.user_fid)
        ))


async def installed_fids(engine, neynar: NeynarClient | None) -> list[int]:
    """Installations table plus FIDs holding an enabled notification token."""
    fids = set(await run_db(installed_fids_from_db, engine))
    if neynar is not None:
        try:
            tokens = await neynar.fetch_notification_tokens()
        except UpstreamError:
            logger.exception("Could not fetch notification tokens; using installations table only")
        else:
            for token in tokens:
                status = token.get("status")
                if token.get("fid") and (status == "enabled" or not status):
                    fids.add(int(token["fid"]))
    return sorted(fids)


def _preferences_for(engine, fids: list[int]) -> dict[int, dict | None]:
    if not fids:
        return {}
    with Session(engine) as session:
        return dict(session.execute(
            select(User.fid, User.preferences).where(User.fid.in_(fids))
        ).all())


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------
def _enqueue(
    engine,
    groups: dict[str, list[int]],
    cast_hash: str,
    cast_data: dict[str, Any],
    hour_utc: int,
) -> int:
    now = datetime.now(UTC)
    queued = 0
    with get_session(engine) as session:
        for frequency in (FREQUENCY_DAILY, FREQUENCY_WEEKLY):
            scheduled_for = compute_scheduled_for(now, frequency, hour_utc)
            for fid in groups[frequency]:
                ensure_user(session, fid)
                session.add(MiniappNotificationQueue(
                    user_fid=fid,
                    cast_hash=cast_hash,
                    cast_data=cast_data,
                    scheduled_for=scheduled_for,
                ))
                queued += 1
    return queued


async def send_notification(
    neynar: NeynarClient,
    target_fids: list[int],
    title: str,
    body: str,
    target_url: str | None,
    app_url: str,
) -> tuple[int, int]:
    payload = build_notification_payload(target_fids, title, body, target_url, app_url)
    response = await neynar.publish_frame_notifications(payload)
    sent, failed = count_deliveries(response)
    logger.info("Miniapp notification to %d users: %d sent, %d failed", len(target_fids), sent, failed)
    return sent, failed


async def notify_new_curated_cast(
    engine,
    neynar: NeynarClient | None,
    cast_hash: str,
    cast_data: dict[str, Any],
    cfg: DepthcasterConfig,
) -> dict[str, int]:
    """Push now to ``all`` users, queue for ``daily`` / ``weekly`` users."""
    fids = await installed_fids(engine, neynar)
    if not fids:
        logger.info("No miniapp installations; nothing to notify for %s", cast_hash)
        return {"sent": 0, "errors": 0, "queued": 0}

    groups = group_by_frequency(fids, await run_db(_preferences_for, engine, fids))
    author = (cast_data or {}).get("author") or {}
    author_name = author.get("display_name") or author.get("username") or "Someone"
    body = ((cast_data or {}).get("text") or "").strip() or f"{author_name} curated a cast"
    target_url = f"{cfg.app_url}/miniapp?castHash={cast_hash}"

    sent = errors = 0
    immediate = groups[FREQUENCY_ALL]
    if immediate:
        if neynar is None:
            logger.warning("No Neynar client; %d immediate notifications dropped", len(immediate))
            errors = len(immediate)
        else:
            try:
                sent, errors = await send_notification(
                    neynar, immediate, "New curated cast", body, target_url, cfg.app_url
                )
            except (UpstreamError, ValidationError):
                logger.exception("Immediate miniapp notification failed for %s", cast_hash)
                errors = len(immediate)

    queued = await run_db(
        _enqueue, engine, groups, cast_hash, cast_data, cfg.notification_hour_utc
    )

    logger.info(
        "Curated cast %s: %d sent immediately, %d errors, %d queued",
        cast_hash, sent, errors, queued,
    )
    return {"sent": sent, "errors": errors, "queued": queued}


async def broadcast(
    engine,
    neynar: NeynarClient | None,
    title: str,
    body: str,
    cfg: DepthcasterConfig,
    *,
    target_url: str | None = None,
    target_fids: list[int] | None = None,
) -> dict[str, Any]:
    """Admin push to every installed user, or to the installed subset of *target_fids*."""
    if neynar is None:
        raise UpstreamError("Neynar is not configured")
    installed = await installed_fids(engine, neynar)
    if target_fids is None:
        eligible, ineligible = installed, []
    else:
        installed_set = set(installed)
        eligible = [f for f in target_fids if f in installed_set]
        ineligible = [f for f in target_fids if f not in installed_set]

    if not eligible:
        logger.info("Broadcast %r has no eligible recipients", title)
        return {"sent": 0, "failed": 0, "eligible": [], "ineligible": ineligible}

    sent, failed = await send_notification(
        neynar, eligible, title, body, target_url or f"{cfg.app_url}/miniapp", cfg.app_url
    )
    return {"sent": sent, "failed": failed, "eligible": eligible, "ineligible": ineligible}


def get_due_notifications(
    engine, now: datetime, fids: list[int] | None = None
) -> dict[int, list[MiniappNotificationQueue]]:
    """Unsent queue rows with ``scheduled_for <= now``, grouped by user."""
    stmt = select(MiniappNotificationQueue).where(
        MiniappNotificationQueue.sent_at.is_(None),
        MiniappNotificationQueue.scheduled_for <= now,
    )
    if fids is not None:
        stmt = stmt.where(MiniappNotificationQueue.user_fid.in_(fids))
    stmt = stmt.order_by(MiniappNotificationQueue.scheduled_for, MiniappNotificationQueue.id)

    grouped: dict[int, list[MiniappNotificationQueue]] = defaultdict(list)
    with Session(engine, expire_on_commit=False) as session:
        for row in session.scalars(stmt):
            grouped[row.user_fid].append(row)
    return dict(grouped)


def mark_sent(engine, ids: list[int], now: datetime) -> None:
    if not ids:
        return
    with get_session(engine) as session:
        session.execute(
            update(MiniappNotificationQueue)
            .where(MiniappNotificationQueue.id.in_(ids))
            .values(sent_at=now)
        )


def digest_message(frequency: str, count: int) -> tuple[str, str]:
    period = "today" if frequency == FREQUENCY_DAILY else "this week"
    title = "Daily curated casts" if frequency == FREQUENCY_DAILY else "Weekly curated casts"
    return title, f"{count} new curated cast{'' if count == 1 else 's'} {period}"


async def send_batched_notifications(
    engine,
    neynar: NeynarClient | None,
    frequency: str,
    cfg: DepthcasterConfig,
    now: datetime | None = None,
) -> dict[str, int]:
    """Send one digest per installed ``frequency`` user with due rows."""
    if frequency not in (FREQUENCY_DAILY, FREQUENCY_WEEKLY):
        raise ValidationError(f"Invalid digest frequency: {frequency}")
    now = now or datetime.now(UTC)
    stats = {"notifications_sent": 0, "users_processed": 0, "errors": 0}

    fids = await run_db(installed_fids_from_db, engine)
    groups = group_by_frequency(fids, await run_db(_preferences_for, engine, fids))
    targets = groups[frequency]
    if not targets:
        logger.info("No %s digest users", frequency)
        return stats

    due = await run_db(get_due_notifications, engine, now, targets)
    for fid in targets:
        rows = due.get(fid)
        if not rows:
            continue
        title, body = digest_message(frequency, len(rows))
        try:
            if neynar is None:
                raise UpstreamError("Neynar client is not configured")
            sent, _ = await send_notification(
                neynar, [fid], title, body, f"{cfg.app_url}/miniapp", cfg.app_url
            )
        except (UpstreamError, ValidationError):
            logger.exception("Digest for fid %d failed", fid)
            stats["errors"] += 1
            continue

        if sent > 0:
            await run_db(mark_sent, engine, [r.id for r in rows], now)
            stats["notifications_sent"] += len(rows)
            stats["users_processed"] += 1
        else:
            logger.warning("Digest for fid %d was not delivered; rows left queued", fid)
            stats["errors"] += 1

    logger.info(
        "%s digest: %d notifications to %d users, %d errors",
        frequency.capitalize(), stats["notifications_sent"], stats["users_processed"], stats["errors"],
    )
    return stats
