from typing import Dict, Iterable

from artistgraph.db.neo4j_connector import Neo4jGraphStore


async def find_artists_excluding(store: Neo4jGraphStore, uris: Iterable[str]) -> Dict[str, str]:
    """Return {uri: name} for every stored Artist whose uri is not in ``uris``."""
    found: Dict[str, str] = {}
    async for uri, name in store.stream_artists_excluding(uris):
        found[uri] = name
    return found
