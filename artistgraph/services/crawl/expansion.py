"""Expansion engine: one round of frontier-driven graph growth.

A round visits every artist in the frontier snapshot concurrently. Each visit
fetches the artist and its discography, compiles upserts and applies them one
transaction per operation. After all visits, the frontier is refreshed from the
graph: every stored artist not visited this round enters it (or stays), and the
artists visited this round leave it. With ``exclude_expanded`` the artists
expanded in earlier rounds are kept out as well.

Failure policy:
- a failing upsert is logged with its sequence number and counted; the visit continues.
- a catalog failure for one artist either skips that artist (``on_artist_error="skip"``,
  the artist stays in the frontier) or aborts the round (``"abort"``, frontier untouched).
- AuthError always propagates and ends the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from artistgraph.config import ON_ERROR_CHOICES, CrawlerSettings
from artistgraph.errors import AuthError, CatalogError, GraphStoreError, RoundAbortedError
from artistgraph.services.crawl.discography import collect_discography
from artistgraph.services.crawl.frontier import Frontier
from artistgraph.services.graph.artists import find_artists_excluding
from artistgraph.services.graph.upserts import UpsertOperation, compile_artist_upserts

logger = logging.getLogger(__name__)


@dataclass
class ArtistVisit:
    uri: str
    name: str
    albums: int = 0
    operations: int = 0
    failed_operations: int = 0
    skipped_entities: int = 0
    elapsed: float = 0.0
    error: Optional[str] = None
    # uri the catalog answered with; differs from ``uri`` when the id was relinked
    catalog_uri: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RoundReport:
    round_number: int
    visits: List[ArtistVisit] = field(default_factory=list)
    discovered: int = 0
    frontier_size: int = 0
    elapsed: float = 0.0

    @property
    def visited(self) -> List[str]:
        return [v.uri for v in self.visits if v.ok]

    @property
    def failed_artists(self) -> Dict[str, str]:
        return {v.uri: v.error for v in self.visits if not v.ok}

    @property
    def operations_applied(self) -> int:
        return sum(v.operations - v.failed_operations for v in self.visits)

    @property
    def operations_failed(self) -> int:
        return sum(v.failed_operations for v in self.visits)

    @property
    def entities_skipped(self) -> int:
        return sum(v.skipped_entities for v in self.visits)


class ExpansionEngine:
    def __init__(
        self,
        catalog,
        store,
        *,
        album_fan_out: int = 10,
        artist_concurrency: int = 4,
        on_artist_error: str = "skip",
        graph_timeout: float = 30.0,
        exclude_expanded: bool = False,
    ) -> None:
        if on_artist_error not in ON_ERROR_CHOICES:
            raise ValueError(f"on_artist_error must be one of {ON_ERROR_CHOICES}")
        self.catalog = catalog
        self.store = store
        self.album_fan_out = album_fan_out
        self.artist_concurrency = artist_concurrency
        self.on_artist_error = on_artist_error
        self.graph_timeout = graph_timeout
        self.exclude_expanded = exclude_expanded
        self.expanded: Set[str] = set()
        self.rounds_completed = 0
        self._sequence = 0
        self._album_limiter: Optional[asyncio.Semaphore] = None

    @classmethod
    def from_settings(cls, settings: CrawlerSettings, catalog, store) -> "ExpansionEngine":
        return cls(
            catalog,
            store,
            album_fan_out=settings.album_fan_out,
            artist_concurrency=settings.artist_concurrency,
            on_artist_error=settings.on_artist_error,
            graph_timeout=settings.graph_timeout,
            exclude_expanded=settings.exclude_expanded,
        )

    async def expand(self, frontier: Frontier) -> RoundReport:
        """Run one round against ``frontier`` and update it in place."""
        round_number = self.rounds_completed + 1
        report = RoundReport(round_number=round_number)
        started = time.perf_counter()
        snapshot = frontier.snapshot()
        logger.info("Round %d: expanding %d artists", round_number, len(snapshot))

        self._album_limiter = asyncio.Semaphore(self.album_fan_out)
        report.visits = await self._visit_all(snapshot)

        visited = set(report.visited)
        visited.update(v.catalog_uri for v in report.visits if v.ok and v.catalog_uri)
        exclude = (visited | self.expanded) if self.exclude_expanded else visited
        try:
            candidates = await asyncio.wait_for(find_artists_excluding(self.store, exclude), self.graph_timeout)
        except asyncio.TimeoutError:
            raise GraphStoreError(f"Frontier query timed out after {self.graph_timeout}s") from None
        report.discovered = frontier.add_missing(candidates)
        frontier.discard(visited)
        self.expanded |= visited

        self.rounds_completed = round_number
        report.frontier_size = len(frontier)
        report.elapsed = time.perf_counter() - started
        logger.info(
            "Round %d done in %.2fs: %d visited, %d failed, %d ops applied, %d ops failed, "
            "%d entities skipped, %d discovered, frontier now %d",
            round_number, report.elapsed, len(report.visited), len(report.failed_artists),
            report.operations_applied, report.operations_failed, report.entities_skipped,
            report.discovered, report.frontier_size,
        )
        return report

    async def _visit_all(self, snapshot: Dict[str, str]) -> List[ArtistVisit]:
        if not snapshot:
            return []
        limiter = asyncio.Semaphore(self.artist_concurrency)

        async def guarded(uri: str, name: str) -> ArtistVisit:
            async with limiter:
                return await self._visit_with_policy(uri, name)

        tasks = [asyncio.create_task(guarded(uri, name)) for uri, name in snapshot.items()]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in tasks:
                if task in done and not task.cancelled() and task.exception() is not None:
                    raise task.exception()
            return [task.result() for task in tasks]
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _visit_with_policy(self, uri: str, name: str) -> ArtistVisit:
        try:
            return await self.visit_artist(uri, name)
        except AuthError:
            raise
        except CatalogError as exc:
            if self.on_artist_error == "abort":
                raise RoundAbortedError(uri, exc) from exc
            logger.warning("Skipping %s (%s): %s", name, uri, exc)
            return ArtistVisit(uri=uri, name=name, error=str(exc) or type(exc).__name__)

    async def visit_artist(self, uri: str, name: str) -> ArtistVisit:
        """Fetch, compile and apply one artist's discography."""
        started = time.perf_counter()
        artist = await self.catalog.get_artist(uri)
        albums = await collect_discography(
            self.catalog, artist.uri, limiter=self._album_limiter, fan_out=self.album_fan_out
        )
        batch = compile_artist_upserts(artist, albums)
        failed = await self.apply_operations(batch.operations)

        visit = ArtistVisit(
            uri=uri,
            name=artist.name or name,
            albums=len(albums),
            operations=len(batch),
            failed_operations=failed,
            skipped_entities=len(batch.skipped),
            elapsed=time.perf_counter() - started,
            catalog_uri=artist.uri,
        )
        logger.info("Completed %s in %.2fs (%d albums, %d ops, %d failed)",
                    visit.name, visit.elapsed, visit.albums, visit.operations, failed)
        return visit

    async def apply_operations(self, operations: Sequence[UpsertOperation]) -> int:
        """Apply each operation in its own transaction, in order. Returns the failure count."""
        failed = 0
        for op in operations:
            self._sequence += 1
            seq = self._sequence
            started = time.perf_counter()
            error: Optional[BaseException] = None
            try:
                result = await asyncio.wait_for(self.store.apply_upserts([op]), self.graph_timeout)
                if result.errors:
                    error = result.errors[0][1]
            except GraphStoreError as exc:
                error = exc
            except asyncio.TimeoutError:
                error = GraphStoreError(f"timed out after {self.graph_timeout}s")
            elapsed = time.perf_counter() - started
            if error is None:
                logger.info("Successfully processed query %d (%s) in %.3fs", seq, op.kind, elapsed)
                continue
            failed += 1
            logger.warning("Error processing query %d (%s) after %.3fs: %s", seq, op.describe(), elapsed, error)
            logger.debug("Failed statement %d: %s", seq, op.render_inline())
        return failed
