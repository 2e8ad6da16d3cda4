"""Artist collaboration graph crawler.

Expands a Neo4j graph of artists, albums, tracks, genres and artwork from the
Spotify Web API, one bounded round at a time.
"""

__version__ = "0.1.0"
