"""
depthcaster.errors — Domain exceptions
=======================================

Services raise these; the API layer maps them onto HTTP status codes
through one exception handler (see :mod:`depthcaster.api.main`).
"""

from __future__ import annotations


class DepthcasterError(Exception):
    """Base class for all domain errors."""

    status_code = 500


class NotFoundError(DepthcasterError):
    status_code = 404


class PermissionDenied(DepthcasterError):
    status_code = 403


class ConflictError(DepthcasterError):
    """A uniqueness rule was violated (e.g. a cast curated twice)."""

    status_code = 409


class ValidationError(DepthcasterError):
    status_code = 400


class UpstreamError(DepthcasterError):
    """A third-party API (Neynar, DeepSeek) failed or returned garbage."""

    status_code = 502
