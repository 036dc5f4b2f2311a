"""
tests/test_rate_limit.py — Admin API Rate Limiting Tests
==========================================================
Admin mutation endpoints are rate-limited per admin FID (30/min by
default), returning 429 with a ``Retry-After`` header.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from conftest import auth, grant
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from depthcaster.api.rate_limit import DEFAULT_RATE_LIMIT, AdminRateLimiter, get_rate_limiter
from depthcaster.config import DepthcasterConfig
from depthcaster.database.models import AdminRateLimitEvent

T0 = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def _events(engine, fid=None) -> int:
    stmt = select(func.count(AdminRateLimitEvent.id))
    if fid is not None:
        stmt = stmt.where(AdminRateLimitEvent.admin_fid == fid)
    with Session(engine) as s:
        return s.scalar(stmt)


# ---------------------------------------------------------------------------
# Unit tests for the AdminRateLimiter core (DB-backed)
# ---------------------------------------------------------------------------
class TestAdminRateLimiter:
    @pytest.fixture(autouse=True)
    def _limiter(self, db_engine):
        self.limiter = AdminRateLimiter(db_engine, max_requests=3, window_seconds=60)
        self.engine = db_engine

    def test_remaining_counts_down(self):
        remaining = [self.limiter.hit(1, T0).remaining for _ in range(3)]
        assert remaining == [2, 1, 0]

    def test_blocks_after_limit_without_recording(self):
        for _ in range(3):
            assert self.limiter.hit(1, T0).allowed

        decision = self.limiter.hit(1, T0 + timedelta(seconds=10))
        assert not decision.allowed
        assert decision.remaining == 0
        assert decision.retry_after == 51
        assert _events(self.engine, 1) == 3

    def test_window_slides(self):
        self.limiter.hit(1, T0)
        self.limiter.hit(1, T0 + timedelta(seconds=30))
        self.limiter.hit(1, T0 + timedelta(seconds=40))
        assert not self.limiter.hit(1, T0 + timedelta(seconds=59)).allowed

        # The first hit has aged out
        decision = self.limiter.hit(1, T0 + timedelta(seconds=60))
        assert decision.allowed
        assert decision.remaining == 0
        assert _events(self.engine, 1) == 3

    def test_separate_admins_have_separate_limits(self):
        for _ in range(3):
            self.limiter.hit(1, T0)
        assert not self.limiter.hit(1, T0).allowed
        assert self.limiter.hit(2, T0).allowed

    def test_reset_one_admin(self):
        for _ in range(3):
            self.limiter.hit(1, T0)
        self.limiter.hit(2, T0)

        self.limiter.reset(1)
        assert _events(self.engine, 1) == 0
        assert _events(self.engine, 2) == 1

    def test_reset_all(self):
        self.limiter.hit(1, T0)
        self.limiter.hit(2, T0)
        self.limiter.reset()
        assert _events(self.engine) == 0


class TestLimiterConfiguration:
    def test_default_limit_is_thirty(self, db_engine):
        assert DEFAULT_RATE_LIMIT == 30
        assert AdminRateLimiter(db_engine).max_requests == 30

    def test_limits_come_from_config(self, db_engine, monkeypatch):
        import depthcaster.api.rate_limit as rl_mod

        monkeypatch.setattr(rl_mod, "_limiter", None)
        cfg = DepthcasterConfig(
            app_name="D", app_url="https://d.test", admin_rate_limit=5, admin_rate_window_seconds=10
        )
        limiter = get_rate_limiter(db_engine, cfg)
        assert (limiter.max_requests, limiter.window_seconds) == (5, 10)
        assert get_rate_limiter(db_engine, cfg) is limiter


# ---------------------------------------------------------------------------
# Integration tests with FastAPI TestClient
# ---------------------------------------------------------------------------
class TestRateLimitDependency:
    @pytest.fixture
    def limited(self, client, db_engine, monkeypatch):
        """The app's client with a 3-per-minute limiter on the test engine."""
        import depthcaster.api.rate_limit as rl_mod

        limiter = AdminRateLimiter(db_engine, max_requests=3, window_seconds=60)
        monkeypatch.setattr(rl_mod, "_limiter", limiter)
        grant(db_engine, 1, "admin")
        grant(db_engine, 2, "admin")
        return client, limiter

    def _tag(self, client, fid, tag="essay"):
        return client.post("/api/admin/tags", json={"cast_hash": "0xa", "tag": tag}, headers=auth(fid))

    def test_get_requests_not_rate_limited(self, limited, db_engine):
        client, _ = limited
        for _ in range(10):
            assert client.get("/api/admin/roles", headers=auth(1)).status_code == 200
        assert _events(db_engine) == 0

    def test_allowed_mutation_reports_remaining(self, limited):
        client, _ = limited
        resp = self._tag(client, 1)
        assert resp.status_code == 201
        assert resp.headers["X-RateLimit-Limit"] == "3"
        assert resp.headers["X-RateLimit-Remaining"] == "2"

    def test_returns_429_after_limit(self, limited):
        client, _ = limited
        for i in range(3):
            assert self._tag(client, 1, f"t{i}").status_code == 201

        resp = self._tag(client, 1, "t3")
        assert resp.status_code == 429
        body = resp.json()
        assert body["detail"]["error"] == "rate_limit_exceeded"
        assert body["detail"]["retry_after"] >= 1
        assert resp.headers["Retry-After"] == str(body["detail"]["retry_after"])

    def test_different_admins_have_separate_limits(self, limited):
        client, limiter = limited
        for _ in range(3):
            limiter.hit(1)

        assert self._tag(client, 1).status_code == 429
        assert self._tag(client, 2).status_code == 201

    def test_non_admin_rejected_before_counting(self, limited, db_engine):
        client, _ = limited
        assert self._tag(client, 99).status_code == 403
        assert _events(db_engine, 99) == 0

    def test_collection_changes_are_counted(self, limited, db_engine):
        client, _ = limited
        client.post("/api/collections", json={"name": "best"}, headers=auth(1))
        client.patch("/api/collections/best", json={"description": "x"}, headers=auth(1))
        client.delete("/api/collections/best", headers=auth(1))
        assert _events(db_engine, 1) == 3
        assert self._tag(client, 1).status_code == 429
