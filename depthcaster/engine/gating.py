"""
depthcaster.engine.gating — Collection access rules
====================================================

Collections are ``open``, locked to a single user (``gated_user``), or
guarded by a rule (``gated_rule``).  Rules are stored as JSONB::

    {"type": "display_name_contains_emoji", "emoji": "🎩"}
    {"type": "has_role", "role": "curator"}
    {"type": "user_fid", "fid": 3}

Anything malformed evaluates to ``False``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from depthcaster.constants import ADMIN_ROLES

if TYPE_CHECKING:
    from depthcaster.database.models import Collection, User


def evaluate_gating_rule(
    rule: dict[str, Any] | None,
    user: User | None,
    roles: Iterable[str] = (),
) -> bool:
    if not user or not isinstance(rule, dict):
        return False

    rule_type = rule.get("type")
    if rule_type == "display_name_contains_emoji":
        emoji = rule.get("emoji")
        return isinstance(emoji, str) and bool(emoji) and emoji in (user.display_name or "")
    if rule_type == "has_role":
        role = rule.get("role")
        return isinstance(role, str) and role in set(roles)
    if rule_type == "user_fid":
        try:
            fid = int(rule.get("fid"))
        except (TypeError, ValueError):
            return False
        return user.fid == fid
    return False


def can_user_add_to_collection(
    collection: Collection,
    user: User | None,
    roles: Iterable[str] = (),
) -> bool:
    """Whether *user* may add casts to (and see) a gated *collection*."""
    if user is None:
        return False

    roles = set(roles)
    if roles & ADMIN_ROLES:
        return True

    if collection.access_type == "open":
        return True
    if collection.access_type == "gated_user":
        return collection.gated_user_id is not None and user.fid == collection.gated_user_id
    if collection.access_type == "gated_rule":
        return evaluate_gating_rule(collection.gating_rule, user, roles)
    return False
