"""
depthcaster.__main__ — Entry Point
===================================

Run with::

    python -m depthcaster

Startup sequence:
1. Configure logging.
2. Load environment variables from ``.env``.
3. Check the configuration and database before binding a port.
4. Serve the FastAPI app with uvicorn.
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from depthcaster.config import load_config
from depthcaster.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("depthcaster")


def main() -> None:
    """Bootstrap and serve the Depthcaster API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError) as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    logger.info("Config loaded — App: %s (%s)", cfg.app_name, cfg.app_url)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)
    engine.dispose()

    # 4. API (blocks until Ctrl+C or SIGTERM).
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting Depthcaster API on %s:%d…", host, port)
    uvicorn.run("depthcaster.api.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
