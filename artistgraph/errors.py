"""Error taxonomy shared by the adapters and the expansion engine."""

from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for every error raised by the crawler."""


class ConfigError(CrawlerError, RuntimeError):
    """Missing or invalid configuration. Raised once at startup."""


class CatalogError(CrawlerError):
    """The music catalog returned an error we cannot interpret."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(CatalogError):
    """Identifier unknown to the catalog (or not a valid catalog identifier)."""


class AuthError(CatalogError):
    """Credentials rejected. Fatal for the whole run."""


class RateLimitedError(CatalogError):
    def __init__(self, message: str, *, retry_after: Optional[float] = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class CatalogTimeoutError(CatalogError):
    """A catalog request exceeded its timeout."""


class GraphStoreError(CrawlerError):
    """A graph database call failed."""


class GraphTransactionError(GraphStoreError):
    """A transaction could not be opened or committed."""


class MalformedEntityError(CrawlerError, ValueError):
    """A catalog entity lacks the key needed to upsert it."""

    def __init__(self, kind: str, name: Optional[str], reason: str, *, context: Optional[str] = None) -> None:
        self.kind = kind
        self.name = name
        self.reason = reason
        self.context = context
        where = f" in {context}" if context else ""
        super().__init__(f"{kind} {name!r}{where}: {reason}")


class RoundAbortedError(CrawlerError):
    """An expansion round stopped on its first retrieval failure."""

    def __init__(self, artist_uri: str, cause: BaseException) -> None:
        super().__init__(f"Round aborted while visiting {artist_uri}: {cause}")
        self.artist_uri = artist_uri
        self.cause = cause
