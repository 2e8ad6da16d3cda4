"""Compile an artist's discography into idempotent graph upserts.

Each ``UpsertOperation`` is self-sufficient: it MERGEs every node it touches
(keyed by its natural identifier) before MERGing the edges between them, so it
can run in its own transaction in any order relative to other operations.

Values are always bound as Cypher parameters. Labels and relationship types
cannot be parameterized, so they are inlined and checked against the
allow-lists below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from artistgraph.errors import MalformedEntityError
from artistgraph.models.catalog import Album, Artist

logger = logging.getLogger(__name__)

# label -> key property
NODE_KEYS = {
    "Artist": "uri",
    "Album": "uri",
    "Track": "uri",
    "Genre": "name",
    "Image": "url",
}

ALLOWED_REL_TYPES = {
    "HAS_GENRE",
    "RELEASED",
    "HAS_ARTWORK",
    "WROTE",
    "CONTAINS",
}


def quote_cypher_string(value: str) -> str:
    """Return ``value`` as a single-quoted Cypher string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass(frozen=True)
class NodeMerge:
    alias: str
    label: str
    key: str
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if NODE_KEYS.get(self.label) is None:
            raise ValueError(f"Invalid node label: {self.label}")

    @property
    def key_property(self) -> str:
        return NODE_KEYS[self.label]


@dataclass(frozen=True)
class EdgeMerge:
    source: str
    rel_type: str
    target: str

    def __post_init__(self) -> None:
        if self.rel_type not in ALLOWED_REL_TYPES:
            raise ValueError(f"Invalid relation type: {self.rel_type}")


@dataclass(frozen=True)
class UpsertOperation:
    kind: str
    nodes: Tuple[NodeMerge, ...]
    edges: Tuple[EdgeMerge, ...] = ()

    @property
    def query(self) -> str:
        clauses: List[str] = []
        for n in self.nodes:
            clauses.append(f"MERGE ({n.alias}:{n.label} {{{n.key_property}: ${n.alias}_key}})")
            if n.name is not None:
                clauses.append(f"SET {n.alias}.name = coalesce(${n.alias}_name, {n.alias}.name)")
        for e in self.edges:
            clauses.append(f"MERGE ({e.source})-[:{e.rel_type}]->({e.target})")
        return " ".join(clauses)

    @property
    def parameters(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for n in self.nodes:
            params[f"{n.alias}_key"] = n.key
            if n.name is not None:
                params[f"{n.alias}_name"] = n.name
        return params

    def render_inline(self) -> str:
        """Render the statement with escaped literals instead of parameters.

        Used for diagnostics; execution always goes through ``query`` + ``parameters``.
        """
        clauses: List[str] = []
        for n in self.nodes:
            clauses.append(f"MERGE ({n.alias}:{n.label} {{{n.key_property}: {quote_cypher_string(n.key)}}})")
            if n.name is not None:
                clauses.append(f"SET {n.alias}.name = {quote_cypher_string(n.name)}")
        for e in self.edges:
            clauses.append(f"MERGE ({e.source})-[:{e.rel_type}]->({e.target})")
        return " ".join(clauses)

    def describe(self) -> str:
        return f"{self.kind}(" + ", ".join(n.key for n in self.nodes) + ")"


@dataclass
class UpsertBatch:
    """Ordered operations for one artist, plus entities that had to be skipped."""

    operations: List[UpsertOperation] = field(default_factory=list)
    skipped: List[MalformedEntityError] = field(default_factory=list)

    def __iter__(self) -> Iterator[UpsertOperation]:
        return iter(self.operations)

    def __len__(self) -> int:
        return len(self.operations)

    def __getitem__(self, index: int) -> UpsertOperation:
        return self.operations[index]


def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    seen = set()
    out: List[str] = []
    for v in values:
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def _artist_node(uri: str, name: Optional[str]) -> NodeMerge:
    return NodeMerge("artist", "Artist", uri, name)


def _album_node(album: Album) -> NodeMerge:
    return NodeMerge("album", "Album", album.uri, album.name)


def compile_artist_upserts(artist: Artist, albums: Sequence[Album]) -> UpsertBatch:
    """Compile upserts for one artist and its full albums.

    Emission order: the artist; one op per artist genre; then per album the
    RELEASED op, one op per album genre, one per artwork URL and one per
    (track, contributing artist) pair.
    """
    batch = UpsertBatch()
    ops = batch.operations
    artist_node = _artist_node(artist.uri, artist.name)

    ops.append(UpsertOperation("artist", (artist_node,)))

    for genre in _distinct(artist.genres):
        ops.append(
            UpsertOperation(
                "artist_genre",
                (artist_node, NodeMerge("genre", "Genre", genre)),
                (EdgeMerge("artist", "HAS_GENRE", "genre"),),
            )
        )

    for album in albums:
        album_node = _album_node(album)
        ops.append(
            UpsertOperation(
                "album",
                (artist_node, album_node),
                (EdgeMerge("artist", "RELEASED", "album"),),
            )
        )
        for genre in _distinct(album.genres):
            ops.append(
                UpsertOperation(
                    "album_genre",
                    (album_node, NodeMerge("genre", "Genre", genre)),
                    (EdgeMerge("album", "HAS_GENRE", "genre"),),
                )
            )
        for url in _distinct(img.url for img in album.images):
            ops.append(
                UpsertOperation(
                    "album_image",
                    (album_node, NodeMerge("image", "Image", url)),
                    (EdgeMerge("album", "HAS_ARTWORK", "image"),),
                )
            )
        for track in album.tracks:
            if not track.uri:
                problem = MalformedEntityError("track", track.name, "missing identifier", context=album.uri)
                logger.warning("Skipping %s", problem)
                batch.skipped.append(problem)
                continue
            track_node = NodeMerge("track", "Track", track.uri, track.name)
            seen_contributors = set()
            for contributor in track.artists:
                if not contributor.uri:
                    problem = MalformedEntityError(
                        "track artist", contributor.name, "missing identifier", context=track.uri
                    )
                    logger.warning("Skipping %s", problem)
                    batch.skipped.append(problem)
                    continue
                if contributor.uri in seen_contributors:
                    continue
                seen_contributors.add(contributor.uri)
                ops.append(
                    UpsertOperation(
                        "track",
                        (_artist_node(contributor.uri, contributor.name), album_node, track_node),
                        (
                            EdgeMerge("artist", "WROTE", "track"),
                            EdgeMerge("album", "CONTAINS", "track"),
                        ),
                    )
                )

    return batch
