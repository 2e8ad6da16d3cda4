"""Music catalog (Spotify Web API) adapter."""
from .client import CatalogClient, spotify_id_from_uri

__all__ = ["CatalogClient", "spotify_id_from_uri"]
