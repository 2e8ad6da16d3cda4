"""Graph domain services: upsert compilation plus the read/maintenance queries
the crawler runs against Neo4j.
"""
from .upserts import (
    ALLOWED_REL_TYPES,
    EdgeMerge,
    NodeMerge,
    UpsertBatch,
    UpsertOperation,
    compile_artist_upserts,
    quote_cypher_string,
)
from .artists import find_artists_excluding
from .admin import count_nodes_by_label

__all__ = [
    # upserts
    'ALLOWED_REL_TYPES','EdgeMerge','NodeMerge','UpsertBatch','UpsertOperation',
    'compile_artist_upserts','quote_cypher_string',
    # reads
    'find_artists_excluding',
    # admin
    'count_nodes_by_label',
]
