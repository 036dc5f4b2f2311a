"""
depthcaster.constants — Shared Constants
=========================================

Single source of truth for scoring weights, role names, enum-like value
sets and notification limits.  Import from here instead of duplicating
in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Engagement weighting (replies > recasts > likes)
# ---------------------------------------------------------------------------
ENGAGEMENT_WEIGHT_REPLIES = 4
ENGAGEMENT_WEIGHT_RECASTS = 2
ENGAGEMENT_WEIGHT_LIKES = 1

# ---------------------------------------------------------------------------
# Quality thresholds
# ---------------------------------------------------------------------------
MIN_USER_SCORE_THRESHOLD = 0.7
MIN_CAST_LENGTH_THRESHOLD = 500
DEEP_THOUGHT_MIN_LENGTH = 100
CONVERSATION_MIN_REPLIES = 2

QUALITY_CATEGORIES: tuple[str, ...] = (
    "crypto-critique",
    "platform-analysis",
    "creator-economy",
    "art-culture",
    "ai-philosophy",
    "community-culture",
    "life-reflection",
    "market-news",
    "playful",
    "other",
)

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
ROLE_CURATOR = "curator"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
ROLE_PLUS = "plus"

ALL_ROLES: frozenset[str] = frozenset({ROLE_CURATOR, ROLE_ADMIN, ROLE_SUPERADMIN, ROLE_PLUS})
ADMIN_ROLES: frozenset[str] = frozenset({ROLE_ADMIN, ROLE_SUPERADMIN})

# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
ACCESS_TYPES: frozenset[str] = frozenset({"open", "gated_user", "gated_rule"})
DISPLAY_TYPES: frozenset[str] = frozenset({"text", "image", "image-text"})
ORDER_MODES: frozenset[str] = frozenset({"manual", "auto"})
ORDER_DIRECTIONS: frozenset[str] = frozenset({"asc", "desc"})

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
NOTIFY_QUALITY_REPLY = "curated.quality_reply"
NOTIFY_CURATED = "curated.curated"
NOTIFY_LIKED = "curated.liked"
NOTIFY_RECAST = "curated.recast"

FREQUENCY_ALL = "all"
FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"
NOTIFICATION_FREQUENCIES: tuple[str, ...] = (FREQUENCY_ALL, FREQUENCY_DAILY, FREQUENCY_WEEKLY)

DEFAULT_QUALITY_REPLY_THRESHOLD = 60

# Farcaster miniapp push limits (Neynar rejects longer strings)
MINIAPP_TITLE_MAX = 32
MINIAPP_BODY_MAX = 128
