from typing import Dict

from artistgraph.db.neo4j_connector import Neo4jGraphStore

CRAWLED_LABELS = ("Artist", "Album", "Track", "Genre", "Image")


async def count_nodes_by_label(store: Neo4jGraphStore) -> Dict[str, int]:
    """Count crawled nodes per label. Labels with no nodes report 0."""
    rows = await store.run_read(
        "MATCH (n) WHERE any(l IN labels(n) WHERE l IN $labels) "
        "UNWIND [l IN labels(n) WHERE l IN $labels] AS label "
        "RETURN label, count(*) AS cnt",
        {"labels": list(CRAWLED_LABELS)},
    )
    counts = {label: 0 for label in CRAWLED_LABELS}
    for row in rows:
        counts[row["label"]] = int(row.get("cnt") or 0)
    return counts
