"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of depthcaster.api.deps, which
# validates the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.pop("WEBHOOK_SECRET", None)
os.environ.pop("CRON_SECRET", None)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively; render it as TEXT (SQLAlchemy's
# JSON serialisation still applies on the Python side).
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from depthcaster.config import DepthcasterConfig  # noqa: E402
from depthcaster.database.models import Base  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# Helper to run async code without pytest-asyncio
def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def make_cast(
    hash_: str = "0xabc",
    *,
    text: str = "A thoughtful cast about protocol design and the people who build it.",
    author_fid: int = 100,
    username: str = "alice",
    score: float | None = 0.9,
    likes: int = 0,
    recasts: int = 0,
    replies: int = 0,
    parent_hash: str | None = None,
    timestamp: str = "2026-10-01T12:00:00Z",
) -> dict:
    """Build a Neynar-shaped cast payload."""
    author = {"fid": author_fid, "username": username, "display_name": username.title()}
    if score is not None:
        author["score"] = score
    return {
        "hash": hash_,
        "text": text,
        "timestamp": timestamp,
        "author": author,
        "parent_hash": parent_hash,
        "reactions": {"likes_count": likes, "recasts_count": recasts},
        "replies": {"count": replies},
    }


# ---------------------------------------------------------------------------
# Fake outbound clients
# ---------------------------------------------------------------------------
class FakeNeynar:
    """Records calls; responses are set per test."""

    def __init__(self):
        self.casts: dict[str, dict] = {}
        self.signers: dict[str, dict] = {}
        self.tokens: list[dict] = []
        self.feeds: dict[str, dict] = {}
        self.published: list[dict] = []
        self.publish_status = "success"
        self.fail_publish = False
        self.closed = False

    async def lookup_cast(self, cast_hash):
        from depthcaster.errors import UpstreamError

        if cast_hash not in self.casts:
            raise UpstreamError(f"Neynar 404 for cast {cast_hash}")
        return self.casts[cast_hash]

    async def lookup_signer(self, signer_uuid):
        from depthcaster.errors import UpstreamError

        if signer_uuid not in self.signers:
            raise UpstreamError("Neynar 404 for signer")
        return self.signers[signer_uuid]

    async def fetch_notification_tokens(self):
        return list(self.tokens)

    async def publish_frame_notifications(self, payload):
        from depthcaster.errors import UpstreamError

        if self.fail_publish:
            raise UpstreamError("Neynar 500")
        self.published.append(payload)
        return {
            "notification_deliveries": [
                {"fid": fid, "status": self.publish_status} for fid in payload["target_fids"]
            ]
        }

    async def fetch_feed(self, *, feed_type="filter", filter_type=None, **kwargs):
        key = feed_type if feed_type == "following" else filter_type
        return self.feeds.get(key, {"casts": []})

    async def fetch_feed_by_channel_ids(self, channel_ids, **kwargs):
        return self.feeds.get("channels", {"casts": []})

    async def aclose(self):
        self.closed = True


class FakeDeepSeek:
    def __init__(self, score: int = 80, category: str = "ai-philosophy"):
        self.score = score
        self.category = category
        self.calls: list[dict] = []

    async def analyze_cast_quality(self, cast_data):
        from depthcaster.services.deepseek_client import QualityAnalysis

        self.calls.append(cast_data)
        if self.score is None:
            return None
        return QualityAnalysis(self.score, self.category, "test")

    async def aclose(self):
        pass


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Depthcaster tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in ``run_db`` and the rate limiter).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cfg() -> DepthcasterConfig:
    return DepthcasterConfig(app_name="Depthcaster", app_url="https://depthcaster.test")


@pytest.fixture
def neynar() -> FakeNeynar:
    return FakeNeynar()


@pytest.fixture
def deepseek() -> FakeDeepSeek:
    return FakeDeepSeek()


# ---------------------------------------------------------------------------
# Auth & API
# ---------------------------------------------------------------------------
def make_token(fid: int) -> str:
    from depthcaster.api.deps import issue_token

    return issue_token(fid)


def auth(fid: int) -> dict:
    return {"Authorization": f"Bearer {make_token(fid)}"}


def grant(engine: Engine, fid: int, *roles: str) -> None:
    from depthcaster.services import user_service

    for role in roles:
        user_service.grant_role(engine, fid, role)


@pytest.fixture
def client(db_engine, cfg, neynar, deepseek):
    """TestClient wired to the SQLite engine and fake outbound clients."""
    from fastapi.testclient import TestClient

    from depthcaster.api import deps
    from depthcaster.api.main import app

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_config] = lambda: cfg
    app.dependency_overrides[deps.get_neynar_factory] = lambda: (lambda: neynar)
    app.dependency_overrides[deps.get_deepseek_factory] = lambda: (lambda: deepseek)
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
