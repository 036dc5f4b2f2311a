"""
depthcaster.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn depthcaster.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from depthcaster.api.auth import router as auth_router  # noqa: E402
from depthcaster.api.deps import get_config, get_engine  # noqa: E402
from depthcaster.api.rate_limit import configure_rate_limiter  # noqa: E402
from depthcaster.api.routes.admin import public_router as tags_router  # noqa: E402
from depthcaster.api.routes.admin import router as admin_router  # noqa: E402
from depthcaster.api.routes.collections import router as collections_router  # noqa: E402
from depthcaster.api.routes.cron import router as cron_router  # noqa: E402
from depthcaster.api.routes.curation import router as curation_router  # noqa: E402
from depthcaster.api.routes.feed import router as feed_router  # noqa: E402
from depthcaster.api.routes.miniapp import router as miniapp_router  # noqa: E402
from depthcaster.api.routes.notifications import router as notifications_router  # noqa: E402
from depthcaster.api.routes.packs import router as packs_router  # noqa: E402
from depthcaster.api.routes.webhooks import router as webhooks_router  # noqa: E402
from depthcaster.errors import DepthcasterError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    configure_rate_limiter(engine, get_config())
    logger.info("Depthcaster API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Depthcaster API shutting down")


app = FastAPI(
    title="Depthcaster API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DepthcasterError)
async def domain_error_handler(request: Request, exc: DepthcasterError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# Mount routers
for _router in (
    auth_router,
    feed_router,
    curation_router,
    webhooks_router,
    collections_router,
    packs_router,
    notifications_router,
    miniapp_router,
    admin_router,
    tags_router,
    cron_router,
):
    app.include_router(_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
