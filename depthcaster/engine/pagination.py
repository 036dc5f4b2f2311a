"""
depthcaster.engine.pagination — Opaque keyset cursors
======================================================

Every list endpoint pages newest-first over ``(timestamp, id)``.  The
cursor is the key of the last row served, base64-encoded so clients treat
it as opaque::

    base64url("2026-03-01T09:00:00+00:00|42")

Queries fetch ``limit + 1`` rows; the extra row only tells us whether a
next page exists and is never returned.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TypeVar

from sqlalchemy import and_, or_

from depthcaster.errors import ValidationError

T = TypeVar("T")


def encode_cursor(timestamp: datetime, row_id: int) -> str:
    raw = f"{timestamp.isoformat()}|{row_id}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    """Inverse of :func:`encode_cursor`.  Raises :class:`ValidationError`."""
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode()).decode()
        ts_part, id_part = raw.rsplit("|", 1)
        return datetime.fromisoformat(ts_part), int(id_part)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Invalid cursor") from exc


def clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    if limit is None or limit <= 0:
        return default
    return min(limit, maximum)


def keyset_before(ts_column, id_column, cursor: str | None):
    """WHERE clause selecting rows strictly after *cursor* in DESC order."""
    if not cursor:
        return None
    ts, row_id = decode_cursor(cursor)
    return or_(ts_column < ts, and_(ts_column == ts, id_column < row_id))


def keyset_after(ts_column, id_column, cursor: str | None):
    """ASC counterpart of :func:`keyset_before`."""
    if not cursor:
        return None
    ts, row_id = decode_cursor(cursor)
    return or_(ts_column > ts, and_(ts_column == ts, id_column > row_id))


def encode_offset_cursor(offset: int) -> str:
    """Cursor for manually ordered lists, where there is no time key."""
    return base64.urlsafe_b64encode(f"offset|{offset}".encode()).decode().rstrip("=")


def decode_offset_cursor(cursor: str | None) -> int:
    if not cursor:
        return 0
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        tag, value = base64.urlsafe_b64decode(padded.encode()).decode().split("|", 1)
        offset = int(value)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Invalid cursor") from exc
    if tag != "offset" or offset < 0:
        raise ValidationError("Invalid cursor")
    return offset


def paginate(
    rows: Sequence[T],
    limit: int,
    key: Callable[[T], tuple[datetime, int]],
) -> tuple[list[T], str | None]:
    """Split ``limit + 1`` fetched rows into a page and the next cursor."""
    page = list(rows[:limit])
    if len(rows) <= limit or not page:
        return page, None
    ts, row_id = key(page[-1])
    return page, encode_cursor(ts, row_id)
