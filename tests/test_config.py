"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from depthcaster.config import load_config
from depthcaster.database import engine as engine_mod


def test_minimal_config_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("app_name: Depthcaster\napp_url: https://d.test/\n", encoding="utf-8")

    cfg = load_config(path)
    assert cfg.app_url == "https://d.test"
    assert cfg.notification_hour_utc == 9
    assert cfg.curated_fids == ()
    assert "deepbot" in cfg.hidden_bots


def test_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "app_name: D\napp_url: https://d.test\ncurated_fids: [3, '5']\n"
        "curated_channels: [art]\nhidden_bots: []\nminiapp_min_quality: 80\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.curated_fids == (3, 5)
    assert cfg.curated_channels == ("art",)
    assert cfg.hidden_bots == ()
    assert cfg.miniapp_min_quality == 80


def test_env_path(tmp_path, monkeypatch):
    path = tmp_path / "other.yaml"
    path.write_text("app_name: D\napp_url: https://d.test\n", encoding="utf-8")
    monkeypatch.setenv("DEPTHCASTER_CONFIG", str(path))
    assert load_config().app_name == "D"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_missing_required_key(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("app_name: D\n", encoding="utf-8")
    with pytest.raises(KeyError):
        load_config(path)


def test_admin_rate_limit_settings(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("app_name: D\napp_url: https://d.test\n", encoding="utf-8")
    cfg = load_config(path)
    assert (cfg.admin_rate_limit, cfg.admin_rate_window_seconds) == (30, 60)

    path.write_text(
        "app_name: D\napp_url: https://d.test\nadmin_rate_limit: 5\nadmin_rate_window_seconds: 10\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert (cfg.admin_rate_limit, cfg.admin_rate_window_seconds) == (5, 10)


# ---------------------------------------------------------------------------
# DATABASE_URL handling
# ---------------------------------------------------------------------------
@pytest.mark.parametrize(
    "raw,expected",
    [
        ("postgres://u:p@db/app", "postgresql://u:p@db/app"),
        ("postgresql://u:p@db/app", "postgresql://u:p@db/app"),
        ("postgresql+psycopg2://u@db/app", "postgresql+psycopg2://u@db/app"),
    ],
)
def test_database_url_normalizes_legacy_scheme(monkeypatch, raw, expected):
    monkeypatch.setenv("DATABASE_URL", raw)
    assert engine_mod.database_url() == expected


def test_engine_uses_normalized_url(monkeypatch):
    seen = {}

    def fake_create_engine(url, **kwargs):
        seen["url"] = url
        return SimpleNamespace(url=SimpleNamespace(host="db"))

    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/app")
    monkeypatch.setattr(engine_mod, "create_engine", fake_create_engine)
    engine_mod.create_db_engine()
    assert seen["url"] == "postgresql://u:p@db/app"


def test_engine_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert engine_mod.database_url() is None
    with pytest.raises(RuntimeError):
        engine_mod.create_db_engine()
