"""
depthcaster.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for identity and feed tuning.  Secrets (database URL,
API keys, JWT secret) never live here; they come from the environment.

Usage::

    from depthcaster.config import load_config

    cfg = load_config()          # reads ./config.yaml or $DEPTHCASTER_CONFIG
    print(cfg.app_url)           # "https://depthcaster.vercel.app"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DepthcasterConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str
    app_url: str

    # Notifications
    notification_hour_utc: int = 9
    miniapp_min_quality: int = 70

    # Feeds
    feed_page_size: int = 25
    max_page_size: int = 100
    min_user_score: float = 0.55
    min_cast_length: int = 50
    curated_fids: tuple[int, ...] = field(default_factory=tuple)
    curated_channels: tuple[str, ...] = field(default_factory=tuple)
    hidden_bots: tuple[str, ...] = ("betonbangers", "deepbot", "bracky", "hunttown.eth")

    # Admin API
    admin_rate_limit: int = 30
    admin_rate_window_seconds: int = 60


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> DepthcasterConfig:
    """Read *path* and return a :class:`DepthcasterConfig` instance.

    When *path* is omitted, ``$DEPTHCASTER_CONFIG`` is used, falling back
    to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``app_name`` or ``app_url`` is missing.
    """
    if path is None:
        path = os.getenv("DEPTHCASTER_CONFIG", "config.yaml")
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = DepthcasterConfig(app_name="", app_url="")
    hidden_bots = raw.get("hidden_bots")

    return DepthcasterConfig(
        app_name=raw["app_name"],
        app_url=str(raw["app_url"]).rstrip("/"),
        notification_hour_utc=int(raw.get("notification_hour_utc", defaults.notification_hour_utc)),
        miniapp_min_quality=int(raw.get("miniapp_min_quality", defaults.miniapp_min_quality)),
        feed_page_size=int(raw.get("feed_page_size", defaults.feed_page_size)),
        max_page_size=int(raw.get("max_page_size", defaults.max_page_size)),
        min_user_score=float(raw.get("min_user_score", defaults.min_user_score)),
        min_cast_length=int(raw.get("min_cast_length", defaults.min_cast_length)),
        curated_fids=tuple(int(f) for f in raw.get("curated_fids") or ()),
        curated_channels=tuple(raw.get("curated_channels") or ()),
        hidden_bots=tuple(hidden_bots) if hidden_bots is not None else defaults.hidden_bots,
        admin_rate_limit=int(raw.get("admin_rate_limit", defaults.admin_rate_limit)),
        admin_rate_window_seconds=int(
            raw.get("admin_rate_window_seconds", defaults.admin_rate_window_seconds)
        ),
    )
