"""
depthcaster.services.neynar_client — Neynar REST API client
============================================================

Thin async wrapper over the handful of Neynar v2 endpoints Depthcaster
uses.  One :class:`httpx.AsyncClient` per instance, explicit timeout, one
transport-level retry.  Any non-2xx response raises
:class:`~depthcaster.errors.UpstreamError`.

Usage::

    async with NeynarClient(api_key) as neynar:
        cast = await neynar.lookup_cast("0xabc...")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from depthcaster.errors import UpstreamError

logger = logging.getLogger(__name__)

NEYNAR_API = "https://api.neynar.com"
_TOKEN_PAGE_SIZE = 100


class NeynarClient:
    """Async client for the Neynar Farcaster API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = NEYNAR_API,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=1),
            headers={"x-api-key": api_key, "x-neynar-experimental": "true"},
        )

    async def __aenter__(self) -> NeynarClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Neynar {method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("Neynar %s %s → %d: %s", method, path, resp.status_code, resp.text[:200])
            raise UpstreamError(f"Neynar {method} {path} returned {resp.status_code}")
        return resp.json()

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------
    async def fetch_feed(
        self,
        *,
        feed_type: str = "filter",
        filter_type: str | None = None,
        fid: int | None = None,
        fids: list[int] | None = None,
        viewer_fid: int | None = None,
        limit: int = 25,
        cursor: str | None = None,
    ) -> dict[str, Any]:
        """``GET /v2/farcaster/feed`` — following / fids / global_trending."""
        params: dict[str, Any] = {
            "feed_type": feed_type,
            "limit": limit,
            "with_recasts": "true",
        }
        if filter_type:
            params["filter_type"] = filter_type
        if fid is not None:
            params["fid"] = fid
        if fids:
            params["fids"] = ",".join(str(f) for f in fids)
        if viewer_fid is not None:
            params["viewer_fid"] = viewer_fid
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/v2/farcaster/feed", params=params)

    async def fetch_feed_by_channel_ids(
        self,
        channel_ids: list[str],
        *,
        viewer_fid: int | None = None,
        limit: int = 25,
        cursor: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "channel_ids": ",".join(channel_ids),
            "limit": limit,
            "with_recasts": "true",
        }
        if viewer_fid is not None:
            params["viewer_fid"] = viewer_fid
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/v2/farcaster/feed/channels", params=params)

    # ------------------------------------------------------------------
    # Casts
    # ------------------------------------------------------------------
    async def lookup_cast(self, cast_hash: str) -> dict[str, Any]:
        """Return the cast dict for *cast_hash*."""
        data = await self._request(
            "GET", "/v2/farcaster/cast", params={"identifier": cast_hash, "type": "hash"}
        )
        cast = data.get("cast")
        if not cast:
            raise UpstreamError(f"Neynar returned no cast for {cast_hash}")
        return cast

    async def lookup_cast_conversation(self, cast_hash: str, reply_depth: int = 2) -> dict[str, Any]:
        data = await self._request(
            "GET",
            "/v2/farcaster/cast/conversation",
            params={"identifier": cast_hash, "type": "hash", "reply_depth": reply_depth},
        )
        return data.get("conversation") or {}

    # ------------------------------------------------------------------
    # Signers
    # ------------------------------------------------------------------
    async def lookup_signer(self, signer_uuid: str) -> dict[str, Any]:
        return await self._request(
            "GET", "/v2/farcaster/signer", params={"signer_uuid": signer_uuid}
        )

    # ------------------------------------------------------------------
    # Miniapp notifications
    # ------------------------------------------------------------------
    async def fetch_notification_tokens(self) -> list[dict[str, Any]]:
        """Return every notification token, following cursors to the end."""
        tokens: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"limit": _TOKEN_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            data = await self._request(
                "GET", "/v2/farcaster/frame/notification_tokens/", params=params
            )
            result = data.get("result") or data
            tokens.extend(result.get("notification_tokens") or [])
            cursor = (result.get("next") or {}).get("cursor")
            if not cursor:
                return tokens

    async def publish_frame_notifications(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/v2/farcaster/frame/notifications/", json=payload)
