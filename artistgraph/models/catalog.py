"""Catalog entities as returned by the Spotify Web API, normalized.

Every entity is keyed by its Spotify URI (``spotify:<kind>:<id>``), which is used
verbatim as the graph node key. Tracks and track artists may lack an id (local
files, unlinked credits); their ``uri`` is then None and the upsert compiler
reports them as malformed rather than inventing a key.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _uri_or_none(payload: Dict[str, Any], kind: str) -> Optional[str]:
    # Local tracks carry a spotify:local:... uri but a null id; treat them as unkeyed.
    sid = payload.get("id")
    if not sid:
        return None
    uri = payload.get("uri")
    if uri and uri.startswith(f"spotify:{kind}:"):
        return uri
    return f"spotify:{kind}:{sid}"


class ArtistRef(BaseModel):
    """An artist credit on a track (simplified artist object)."""

    uri: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ArtistRef":
        return cls(uri=_uri_or_none(payload, "artist"), name=payload.get("name"))


class Artist(BaseModel):
    uri: str
    name: str
    genres: List[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Artist":
        return cls(
            uri=_uri_or_none(payload, "artist") or payload["uri"],
            name=payload.get("name") or "",
            genres=list(payload.get("genres") or []),
        )


class Image(BaseModel):
    url: str
    height: Optional[int] = None
    width: Optional[int] = None


class Track(BaseModel):
    uri: Optional[str] = None
    name: Optional[str] = None
    artists: List[ArtistRef] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Track":
        return cls(
            uri=_uri_or_none(payload, "track"),
            name=payload.get("name"),
            artists=[ArtistRef.from_api(a) for a in payload.get("artists") or []],
        )


class AlbumRef(BaseModel):
    """Simplified album as listed on an artist's album page."""

    uri: str
    name: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "AlbumRef":
        return cls(uri=_uri_or_none(payload, "album") or payload["uri"], name=payload.get("name"))


class AlbumPage(BaseModel):
    items: List[AlbumRef] = Field(default_factory=list)
    offset: int = 0
    limit: int = 50
    total: int = 0


class Album(BaseModel):
    uri: str
    name: str
    genres: List[str] = Field(default_factory=list)
    images: List[Image] = Field(default_factory=list)
    tracks: List[Track] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Dict[str, Any], tracks: Optional[List[Dict[str, Any]]] = None) -> "Album":
        """Build an Album from a full album object.

        ``tracks`` overrides the embedded first page of track items when the
        caller has already followed the track paging.
        """
        if tracks is None:
            tracks = (payload.get("tracks") or {}).get("items") or []
        return cls(
            uri=_uri_or_none(payload, "album") or payload["uri"],
            name=payload.get("name") or "",
            genres=list(payload.get("genres") or []),
            images=[Image(**img) for img in payload.get("images") or [] if img.get("url")],
            tracks=[Track.from_api(t) for t in tracks if t],
        )
