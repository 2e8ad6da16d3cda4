import asyncio

import pytest
from neo4j.exceptions import ServiceUnavailable, SessionExpired

from artistgraph.db.neo4j_connector import CONSTRAINTS, Neo4jGraphStore
from artistgraph.errors import GraphStoreError, GraphTransactionError
from artistgraph.services.graph.admin import count_nodes_by_label
from artistgraph.services.graph.artists import find_artists_excluding
from artistgraph.services.graph.upserts import NodeMerge, UpsertOperation


class FakeRecord(dict):
    def data(self):
        return dict(self)


class FakeCursor:
    def __init__(self, records=()):
        self._records = [FakeRecord(r) for r in records]

    async def consume(self):
        return None

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for r in self._records:
            yield r


class FakeTx:
    def __init__(self, log, fail_on_query=None, fail_commit=False):
        self.log = log
        self.fail_on_query = fail_on_query
        self.fail_commit = fail_commit

    async def run(self, query, parameters=None):
        self.log.append(("run", query, parameters))
        if self.fail_on_query and self.fail_on_query in query:
            raise SessionExpired("statement failed")
        return FakeCursor()

    async def commit(self):
        self.log.append(("commit",))
        if self.fail_commit:
            raise ServiceUnavailable("lost connection")

    async def rollback(self):
        self.log.append(("rollback",))

    async def close(self):
        self.log.append(("close",))


class FakeSession:
    def __init__(self, driver):
        self.driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def begin_transaction(self):
        if self.driver.fail_begin:
            raise ServiceUnavailable("down")
        return FakeTx(self.driver.log, self.driver.fail_on_query, self.driver.fail_commit)

    async def run(self, query, parameters=None):
        self.driver.log.append(("session.run", query, parameters))
        if self.driver.fail_reads:
            raise ServiceUnavailable("down")
        return FakeCursor(self.driver.rows)


class FakeDriver:
    def __init__(self, rows=(), fail_on_query=None, fail_commit=False, fail_begin=False, fail_reads=False,
                 unreachable=False):
        self.rows = list(rows)
        self.fail_on_query = fail_on_query
        self.fail_commit = fail_commit
        self.fail_begin = fail_begin
        self.fail_reads = fail_reads
        self.unreachable = unreachable
        self.log = []
        self.sessions = []
        self.closed = False

    def session(self, **kwargs):
        self.sessions.append(kwargs)
        return FakeSession(self)

    async def verify_connectivity(self):
        if self.unreachable:
            raise ServiceUnavailable("Couldn't connect to localhost:7687")

    async def close(self):
        self.closed = True


def _op(uri, name="n"):
    return UpsertOperation("artist", (NodeMerge("artist", "Artist", uri, name),))


def test_apply_upserts_commits_all_operations_in_one_transaction():
    driver = FakeDriver()
    store = Neo4jGraphStore(driver, database="music")

    result = asyncio.run(store.apply_upserts([_op("spotify:artist:1"), _op("spotify:artist:2")]))

    assert result.ok
    assert result.applied == 2
    kinds = [entry[0] for entry in driver.log]
    assert kinds == ["run", "run", "commit", "close"]
    assert driver.log[0][2] == {"artist_key": "spotify:artist:1", "artist_name": "n"}
    assert driver.sessions == [{"database": "music"}]


def test_failing_statement_rolls_back_and_is_reported():
    driver = FakeDriver(fail_on_query="MERGE")
    store = Neo4jGraphStore(driver)

    result = asyncio.run(store.apply_upserts([_op("spotify:artist:1"), _op("spotify:artist:2")]))

    assert not result.ok
    assert result.applied == 0
    assert result.errors[0][0] == 0
    assert isinstance(result.errors[0][1], SessionExpired)
    assert [entry[0] for entry in driver.log] == ["run", "rollback", "close"]


def test_commit_failure_raises_transaction_error():
    store = Neo4jGraphStore(FakeDriver(fail_commit=True))
    with pytest.raises(GraphTransactionError):
        asyncio.run(store.apply_upserts([_op("spotify:artist:1")]))


def test_begin_failure_raises_transaction_error():
    store = Neo4jGraphStore(FakeDriver(fail_begin=True))
    with pytest.raises(GraphTransactionError):
        asyncio.run(store.apply_upserts([_op("spotify:artist:1")]))


def test_find_artists_excluding_binds_excluded_uris():
    driver = FakeDriver(rows=[{"uri": "spotify:artist:B", "name": "B"}, {"uri": "spotify:artist:C", "name": None}])
    store = Neo4jGraphStore(driver)

    found = asyncio.run(find_artists_excluding(store, {"spotify:artist:A"}))

    assert found == {"spotify:artist:B": "B", "spotify:artist:C": ""}
    _, query, params = driver.log[0]
    assert "NOT a.uri IN $uris" in query
    assert params == {"uris": ["spotify:artist:A"]}


def test_read_failure_is_wrapped():
    store = Neo4jGraphStore(FakeDriver(fail_reads=True))
    with pytest.raises(GraphStoreError):
        asyncio.run(find_artists_excluding(store, []))


def test_count_nodes_by_label_fills_missing_labels():
    store = Neo4jGraphStore(FakeDriver(rows=[{"label": "Artist", "cnt": 3}, {"label": "Genre", "cnt": 2}]))
    counts = asyncio.run(count_nodes_by_label(store))
    assert counts == {"Artist": 3, "Album": 0, "Track": 0, "Genre": 2, "Image": 0}


def test_ensure_constraints_and_close():
    driver = FakeDriver()
    store = Neo4jGraphStore(driver)

    async def run():
        await store.ensure_constraints()
        await store.close()

    asyncio.run(run())
    statements = [entry[1] for entry in driver.log if entry[0] == "session.run"]
    assert statements == list(CONSTRAINTS)
    assert driver.closed


def test_verify_connectivity_wraps_driver_errors():
    asyncio.run(Neo4jGraphStore(FakeDriver()).verify_connectivity())

    with pytest.raises(GraphStoreError):
        asyncio.run(Neo4jGraphStore(FakeDriver(unreachable=True)).verify_connectivity())
