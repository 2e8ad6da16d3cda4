"""Discography retrieval for one artist.

Album listing pages are requested concurrently (bounded by a semaphore shared
across every artist in the round) and collected into an ``AlbumAccumulator``.
The collected references are then resolved into full albums one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from artistgraph.models.catalog import Album, AlbumPage, AlbumRef

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


class AlbumAccumulator:
    """Collects album listing pages from concurrent fetches.

    The lock guards a single append; ``drain`` restores listing order and
    drops repeated albums.
    """

    def __init__(self) -> None:
        self._pages: List[Tuple[int, List[AlbumRef]]] = []
        self._lock = asyncio.Lock()

    async def add_page(self, offset: int, refs: Sequence[AlbumRef]) -> None:
        async with self._lock:
            self._pages.append((offset, list(refs)))

    def drain(self) -> List[AlbumRef]:
        seen = set()
        out: List[AlbumRef] = []
        for _, refs in sorted(self._pages, key=lambda p: p[0]):
            for ref in refs:
                if ref.uri in seen:
                    continue
                seen.add(ref.uri)
                out.append(ref)
        self._pages = []
        return out


async def collect_album_refs(
    client,
    artist_uri: str,
    *,
    limiter: asyncio.Semaphore,
    page_size: int = PAGE_SIZE,
) -> List[AlbumRef]:
    """List every album reference for ``artist_uri``.

    The first page tells us the total; the remaining pages are fetched concurrently.
    """
    accumulator = AlbumAccumulator()

    async def fetch(offset: int) -> AlbumPage:
        async with limiter:
            page = await client.get_artist_albums_page(artist_uri, offset=offset, limit=page_size)
        await accumulator.add_page(offset, page.items)
        return page

    first = await fetch(0)
    tasks = [asyncio.create_task(fetch(offset)) for offset in range(page_size, first.total, page_size)]
    if tasks:
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
    return accumulator.drain()


async def collect_discography(
    client,
    artist_uri: str,
    *,
    limiter: Optional[asyncio.Semaphore] = None,
    fan_out: int = 10,
) -> List[Album]:
    """Return full albums (tracks, genres, artwork) for ``artist_uri``, in listing order."""
    limiter = limiter or asyncio.Semaphore(fan_out)
    refs = await collect_album_refs(client, artist_uri, limiter=limiter)
    albums: List[Album] = []
    for ref in refs:
        async with limiter:
            albums.append(await client.get_album(ref.uri))
    logger.debug("Resolved %d albums for %s", len(albums), artist_uri)
    return albums
