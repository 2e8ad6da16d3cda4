"""Async Neo4j access for the crawler.

``Neo4jGraphStore`` wraps a single ``AsyncDriver``. Writes go through
``apply_upserts`` (one explicit transaction per call); reads used by the
expansion engine stream rows back without materializing the whole result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from artistgraph.config import CrawlerSettings
from artistgraph.errors import GraphStoreError, GraphTransactionError

logger = logging.getLogger(__name__)

_NEO4J_ERRORS = (Neo4jError, DriverError)

CONSTRAINTS = (
    "CREATE CONSTRAINT artist_uri IF NOT EXISTS FOR (n:Artist) REQUIRE n.uri IS UNIQUE",
    "CREATE CONSTRAINT album_uri IF NOT EXISTS FOR (n:Album) REQUIRE n.uri IS UNIQUE",
    "CREATE CONSTRAINT track_uri IF NOT EXISTS FOR (n:Track) REQUIRE n.uri IS UNIQUE",
    "CREATE CONSTRAINT genre_name IF NOT EXISTS FOR (n:Genre) REQUIRE n.name IS UNIQUE",
    "CREATE CONSTRAINT image_url IF NOT EXISTS FOR (n:Image) REQUIRE n.url IS UNIQUE",
)


@dataclass
class ApplyResult:
    """Outcome of one ``apply_upserts`` call.

    ``errors`` holds ``(index, exception)`` for the statement that failed. A
    failed statement rolls back the whole transaction, so ``applied`` is then 0.
    """

    attempted: int = 0
    applied: int = 0
    errors: List[Tuple[int, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class Neo4jGraphStore:
    def __init__(self, driver, *, database: Optional[str] = None) -> None:
        self._driver = driver
        self._database = database

    @classmethod
    def from_settings(cls, settings: CrawlerSettings) -> "Neo4jGraphStore":
        """Create a store with its own driver for the configured database."""
        try:
            driver = AsyncGraphDatabase.driver(
                settings.neo4j_uri,
                auth=(settings.neo4j_username, settings.neo4j_password),
                connection_timeout=settings.graph_timeout,
            )
        except _NEO4J_ERRORS + (ValueError,) as exc:
            raise GraphStoreError(
                f"Failed to create Neo4j driver for URI '{settings.neo4j_uri}'. "
                f"Check that the database is running and the credentials are correct.\nError: {exc}"
            ) from exc
        return cls(driver, database=settings.neo4j_database)

    def _session(self):
        if self._database:
            return self._driver.session(database=self._database)
        return self._driver.session()

    async def close(self) -> None:
        await self._driver.close()

    async def verify_connectivity(self) -> None:
        try:
            await self._driver.verify_connectivity()
        except _NEO4J_ERRORS as exc:
            raise GraphStoreError(f"Neo4j is not reachable: {exc}") from exc

    async def apply_upserts(self, operations: Sequence[Any]) -> ApplyResult:
        """Run ``operations`` (objects with ``query`` and ``parameters``) in one transaction.

        Raises GraphTransactionError when the transaction cannot be opened or
        committed; a failing statement is reported in the result instead.
        """
        result = ApplyResult(attempted=len(operations))
        if not operations:
            return result
        async with self._session() as session:
            try:
                tx = await session.begin_transaction()
            except _NEO4J_ERRORS as exc:
                raise GraphTransactionError(f"Could not open transaction: {exc}") from exc
            try:
                for index, op in enumerate(operations):
                    try:
                        cursor = await tx.run(op.query, op.parameters)
                        await cursor.consume()
                    except _NEO4J_ERRORS as exc:
                        result.errors.append((index, exc))
                        break
                if result.errors:
                    await tx.rollback()
                    return result
                try:
                    await tx.commit()
                except _NEO4J_ERRORS as exc:
                    raise GraphTransactionError(f"Commit failed: {exc}") from exc
                result.applied = len(operations)
                return result
            finally:
                await tx.close()

    async def stream_artists_excluding(self, uris: Iterable[str]) -> AsyncIterator[Tuple[str, str]]:
        """Yield ``(uri, name)`` for every Artist whose uri is not in ``uris``."""
        query = (
            "MATCH (a:Artist) "
            "WHERE a.uri IS NOT NULL AND NOT a.uri IN $uris "
            "RETURN a.uri AS uri, a.name AS name"
        )
        try:
            async with self._session() as session:
                cursor = await session.run(query, {"uris": sorted(set(uris))})
                async for record in cursor:
                    yield record["uri"], record["name"] or ""
        except _NEO4J_ERRORS as exc:
            raise GraphStoreError(f"Artist query failed: {exc}") from exc

    async def run_read(self, query: str, parameters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a read statement and return records as dicts."""
        try:
            async with self._session() as session:
                cursor = await session.run(query, parameters or {})
                return [record.data() async for record in cursor]
        except _NEO4J_ERRORS as exc:
            raise GraphStoreError(f"Query failed: {exc}") from exc

    async def run_write(self, query: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        try:
            async with self._session() as session:
                cursor = await session.run(query, parameters or {})
                await cursor.consume()
        except _NEO4J_ERRORS as exc:
            raise GraphStoreError(f"Statement failed: {exc}") from exc

    async def ensure_constraints(self) -> None:
        """Create uniqueness constraints backing every MERGE key."""
        for statement in CONSTRAINTS:
            await self.run_write(statement)
        logger.info("Ensured %d uniqueness constraints", len(CONSTRAINTS))
