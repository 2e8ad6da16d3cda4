"""Spotify Web API client (client-credentials flow) for the crawler.

Only the calls the expansion engine needs are exposed:

- get_artist(uri)                          GET /v1/artists/{id}
- get_artist_albums_page(uri, offset, n)   GET /v1/artists/{id}/albums
- get_album(uri)                           GET /v1/albums/{id} (+ track paging)

Errors map onto the crawler taxonomy: 404 -> NotFoundError, rejected
credentials -> AuthError, 429 beyond the retry budget -> RateLimitedError,
transport timeouts -> CatalogTimeoutError.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from artistgraph.config import CrawlerSettings
from artistgraph.errors import (
    AuthError,
    CatalogError,
    CatalogTimeoutError,
    NotFoundError,
    RateLimitedError,
)
from artistgraph.models.catalog import Album, AlbumPage, AlbumRef, Artist

logger = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"
TOKEN_URL = "https://accounts.spotify.com/api/token"
ALBUM_PAGE_LIMIT = 50

# pydantic's ValidationError is a ValueError
_PAYLOAD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def spotify_id_from_uri(uri: str, kind: str) -> str:
    """Extract the base62 id from ``spotify:<kind>:<id>``.

    Raises NotFoundError when ``uri`` is not a uri of the expected kind.
    """
    parts = (uri or "").split(":")
    if len(parts) != 3 or parts[0] != "spotify" or parts[1] != kind or not parts[2]:
        raise NotFoundError(f"Not a Spotify {kind} uri: {uri!r}")
    return parts[2]


class CatalogClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 10.0,
        album_groups: str = "album",
        max_retries: int = 2,
        max_retry_after: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        api_base: str = API_BASE,
        token_url: str = TOKEN_URL,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.album_groups = album_groups
        self.max_retries = max_retries
        self.max_retry_after = max_retry_after
        self.api_base = api_base.rstrip("/")
        self.token_url = token_url
        self._http = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": "artistgraph-crawler/0.1"},
        )
        self._access_token: Optional[str] = None
        self._token_expiry = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: CrawlerSettings, **kwargs) -> "CatalogClient":
        return cls(
            settings.client_id,
            settings.client_secret,
            timeout=settings.catalog_timeout,
            album_groups=settings.album_groups,
            **kwargs,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- Public API ---
    async def get_artist(self, uri: str) -> Artist:
        artist_id = spotify_id_from_uri(uri, "artist")
        url = f"{self.api_base}/artists/{artist_id}"
        payload = await self._get(url)
        try:
            return Artist.from_api(payload)
        except _PAYLOAD_ERRORS as exc:
            raise CatalogError(f"Malformed artist payload from {url}: {exc}") from exc

    async def get_artist_albums_page(self, uri: str, offset: int = 0, limit: int = ALBUM_PAGE_LIMIT) -> AlbumPage:
        artist_id = spotify_id_from_uri(uri, "artist")
        url = f"{self.api_base}/artists/{artist_id}/albums"
        payload = await self._get(
            url, params={"include_groups": self.album_groups, "offset": offset, "limit": limit}
        )
        try:
            return AlbumPage(
                items=[AlbumRef.from_api(item) for item in payload.get("items") or [] if item and item.get("id")],
                offset=int(payload.get("offset") or offset),
                limit=int(payload.get("limit") or limit),
                total=int(payload.get("total") or 0),
            )
        except _PAYLOAD_ERRORS as exc:
            raise CatalogError(f"Malformed album page from {url}: {exc}") from exc

    async def get_album(self, uri: str) -> Album:
        """Fetch a full album, following the track paging to the end."""
        album_id = spotify_id_from_uri(uri, "album")
        url = f"{self.api_base}/albums/{album_id}"
        payload = await self._get(url)
        try:
            tracks_page = payload.get("tracks") or {}
            tracks: List[Dict[str, Any]] = list(tracks_page.get("items") or [])
            next_url = tracks_page.get("next")
            while next_url:
                page = await self._get(next_url)
                tracks.extend(page.get("items") or [])
                next_url = page.get("next")
            return Album.from_api(payload, tracks=tracks)
        except _PAYLOAD_ERRORS as exc:
            raise CatalogError(f"Malformed album payload from {url}: {exc}") from exc

    # --- Internals ---
    async def _get(self, url: str, *, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        retries = 0
        refreshed = False
        while True:
            token = await self._ensure_token()
            try:
                resp = await self._http.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
            except httpx.TimeoutException as exc:
                raise CatalogTimeoutError(f"Timed out calling {url}") from exc
            except httpx.HTTPError as exc:
                raise CatalogError(f"Error calling {url}: {exc!r}") from exc

            if resp.status_code == 401 and not refreshed:
                # Token revoked or expired early; fetch a fresh one once.
                refreshed = True
                self._access_token = None
                continue
            if resp.status_code == 429:
                retry_after = _retry_after_seconds(resp)
                if retries < self.max_retries and retry_after is not None and retry_after <= self.max_retry_after:
                    retries += 1
                    logger.warning("Catalog rate limited on %s; retrying in %.1fs (%d/%d)",
                                   url, retry_after, retries, self.max_retries)
                    await asyncio.sleep(retry_after)
                    continue
                raise RateLimitedError(f"Rate limited calling {url}", retry_after=retry_after)
            return _handle_response(resp, url)

    async def _ensure_token(self) -> str:
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expiry:
                return self._access_token
            await self._refresh_access_token()
            return self._access_token

    async def _refresh_access_token(self) -> None:
        logger.info("Requesting new catalog access token")
        auth_b64 = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        try:
            resp = await self._http.post(
                self.token_url,
                headers={"Authorization": f"Basic {auth_b64}"},
                data={"grant_type": "client_credentials"},
            )
        except httpx.TimeoutException as exc:
            raise CatalogTimeoutError("Timed out requesting access token") from exc
        except httpx.HTTPError as exc:
            raise CatalogError(f"Error requesting access token: {exc!r}") from exc
        if resp.status_code in (400, 401, 403):
            raise AuthError(
                f"Catalog rejected the client credentials ({resp.status_code}): {resp.text[:200]}",
                status_code=resp.status_code,
            )
        data = _handle_response(resp, self.token_url)
        token = data.get("access_token")
        if not token:
            raise AuthError("Token response did not include an access_token")
        expires_in = int(data.get("expires_in") or 3600)
        self._access_token = token
        self._token_expiry = time.monotonic() + max(expires_in - 60, 0)
        logger.info("Catalog access token acquired (expires in %ss)", expires_in)


def _retry_after_seconds(resp: httpx.Response) -> Optional[float]:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


def _handle_response(resp: httpx.Response, url: str) -> Dict[str, Any]:
    if resp.status_code == 404:
        raise NotFoundError(f"Not found: {url}", status_code=404)
    if resp.status_code == 401:
        raise AuthError(f"Unauthorized calling {url} ({resp.status_code})", status_code=resp.status_code)
    if resp.status_code >= 400:
        raise CatalogError(
            f"HTTP {resp.status_code} calling {url}: {resp.text[:200]}", status_code=resp.status_code
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise CatalogError(f"Invalid JSON from {url}") from exc
