"""
Depthcaster — Curated Farcaster Feeds
======================================
Privileged curators mark casts as featured content.  Depthcaster stores
those curations, scores them with an LLM, assembles paginated feeds,
groups them into collections and curator packs, and notifies people
about what matters to them.

Package layout::

    depthcaster/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Domain exception hierarchy
    ├── constants.py       # Shared thresholds, weights, categories
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── cast_metadata.py # Cast payload → queryable columns
    │   ├── quality.py     # Heuristic cast filters and ranking
    │   ├── gating.py      # Collection access rules
    │   ├── pagination.py  # Opaque keyset cursors
    │   └── signatures.py  # Webhook HMAC verification
    ├── services/
    │   ├── neynar_client.py    # Farcaster API (httpx)
    │   ├── deepseek_client.py  # LLM quality scoring (httpx)
    │   ├── curation_service.py # Curate / uncurate
    │   ├── feed_service.py     # Feed assembly + cursor pagination
    │   ├── miniapp_service.py  # Push queue batching by frequency
    │   └── ...
    └── api/
        ├── main.py        # FastAPI app
        ├── auth.py        # Neynar signer → JWT
        └── routes/        # Public, curator and admin REST endpoints
"""

__version__ = "0.1.0"
