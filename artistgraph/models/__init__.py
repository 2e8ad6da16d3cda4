from .catalog import Album, AlbumPage, AlbumRef, Artist, ArtistRef, Image, Track

__all__ = ["Album", "AlbumPage", "AlbumRef", "Artist", "ArtistRef", "Image", "Track"]
