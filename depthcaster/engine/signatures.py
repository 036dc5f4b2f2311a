"""
depthcaster.engine.signatures — Webhook HMAC verification
==========================================================

Neynar signs webhook deliveries with ``X-Neynar-Signature``: a hex HMAC of
the raw request body keyed by the webhook secret.  Current deliveries use
SHA-512 (128 hex chars); older ones used SHA-256 (64 hex chars).  Some
proxies were observed forwarding a SHA-256 digest padded to 128 chars, so
the first half of a long signature is also checked against SHA-256.

All comparisons go through :func:`hmac.compare_digest`.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

_SHA512_HEX_LEN = 128
_SHA256_HEX_LEN = 64


def _hex_to_bytes(value: str) -> bytes | None:
    try:
        return bytes.fromhex(value)
    except ValueError:
        return None


def verify_webhook_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    """Return True if *signature* is a valid HMAC of *raw_body*.

    Malformed signatures return False rather than raising.
    """
    if not signature or not secret:
        return False

    normalized = signature.strip().lower()
    key = secret.encode()

    if len(normalized) == _SHA512_HEX_LEN:
        given = _hex_to_bytes(normalized)
        expected = hmac.new(key, raw_body, hashlib.sha512).digest()
        if given is not None and hmac.compare_digest(given, expected):
            return True

    if len(normalized) in (_SHA256_HEX_LEN, _SHA512_HEX_LEN):
        given = _hex_to_bytes(normalized[:_SHA256_HEX_LEN])
        expected = hmac.new(key, raw_body, hashlib.sha256).digest()
        if given is not None and hmac.compare_digest(given, expected):
            return True

    logger.warning(
        "Webhook signature verification failed (len=%d, body=%d bytes)",
        len(normalized), len(raw_body),
    )
    return False


def sign_payload(raw_body: bytes, secret: str) -> str:
    """SHA-512 hex signature, as Neynar would send it."""
    return hmac.new(secret.encode(), raw_body, hashlib.sha512).hexdigest()
