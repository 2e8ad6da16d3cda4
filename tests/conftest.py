import asyncio
from typing import Dict, List, Optional

from artistgraph.db.neo4j_connector import ApplyResult
from artistgraph.errors import GraphStoreError
from artistgraph.models.catalog import Album, AlbumPage, AlbumRef, Artist, ArtistRef, Image, Track


class InMemoryGraphStore:
    """Applies UpsertOperations to dicts, mirroring MERGE + coalesce(name) semantics."""

    def __init__(self, fail_on: Optional[set] = None, unreachable: bool = False):
        self.nodes: Dict[tuple, dict] = {}
        self.edges: set = set()
        self.attempted: List = []
        self.fail_on = set(fail_on or ())
        self.constraints_ensured = False
        self.unreachable = unreachable
        self.excluded_queries: List[set] = []

    def add_artist(self, uri: str, name: str) -> None:
        self.nodes[("Artist", uri)] = {"uri": uri, "name": name}

    async def apply_upserts(self, operations):
        result = ApplyResult(attempted=len(operations))
        for index, op in enumerate(operations):
            self.attempted.append(op)
            if len(self.attempted) in self.fail_on:
                result.errors.append((index, GraphStoreError(f"forced failure {len(self.attempted)}")))
                return result
        for op in operations:
            self._apply(op)
        result.applied = len(operations)
        return result

    def _apply(self, op) -> None:
        bound = {}
        for n in op.nodes:
            key = (n.label, n.key)
            props = self.nodes.setdefault(key, {n.key_property: n.key})
            if n.name is not None:
                props["name"] = n.name
            bound[n.alias] = key
        for e in op.edges:
            self.edges.add((bound[e.source], e.rel_type, bound[e.target]))

    async def stream_artists_excluding(self, uris):
        excluded = set(uris)
        self.excluded_queries.append(excluded)
        for (label, key), props in list(self.nodes.items()):
            if label == "Artist" and key not in excluded:
                await asyncio.sleep(0)
                yield key, props.get("name", "")

    async def verify_connectivity(self):
        if self.unreachable:
            raise GraphStoreError("Neo4j is not reachable: connection refused")

    async def ensure_constraints(self):
        self.constraints_ensured = True

    async def run_read(self, query, parameters=None):
        counts: Dict[str, int] = {}
        for label, _ in self.nodes:
            counts[label] = counts.get(label, 0) + 1
        return [{"label": k, "cnt": v} for k, v in counts.items()]

    def snapshot(self):
        return {k: dict(v) for k, v in self.nodes.items()}, set(self.edges)


class FakeCatalog:
    """Catalog double keyed by artist uri. ``errors`` maps uri -> exception to raise."""

    def __init__(self, artists=None, discographies=None, errors=None):
        self.artists: Dict[str, Artist] = dict(artists or {})
        self.discographies: Dict[str, List[Album]] = dict(discographies or {})
        self.errors: Dict[str, Exception] = dict(errors or {})
        self.albums: Dict[str, Album] = {}
        for albums in self.discographies.values():
            for album in albums:
                self.albums[album.uri] = album
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: List[tuple] = []

    async def _enter(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.in_flight -= 1

    async def get_artist(self, uri):
        self.calls.append(("artist", uri))
        await self._enter()
        if uri in self.errors:
            raise self.errors[uri]
        return self.artists[uri]

    async def get_artist_albums_page(self, uri, offset=0, limit=50):
        self.calls.append(("page", uri, offset))
        await self._enter()
        albums = self.discographies.get(uri, [])
        chunk = albums[offset:offset + limit]
        return AlbumPage(
            items=[AlbumRef(uri=a.uri, name=a.name) for a in chunk],
            offset=offset,
            limit=limit,
            total=len(albums),
        )

    async def get_album(self, uri):
        self.calls.append(("album", uri))
        await self._enter()
        return self.albums[uri]


def make_album(uri, name="Album", *, genres=(), images=(), tracks=()):
    return Album(
        uri=uri,
        name=name,
        genres=list(genres),
        images=[Image(url=u) for u in images],
        tracks=list(tracks),
    )


def make_track(uri, name="Track", *artist_uris):
    return Track(uri=uri, name=name, artists=[ArtistRef(uri=a, name=a.rsplit(":", 1)[-1]) for a in artist_uris])

