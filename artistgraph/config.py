"""Crawler configuration.

Settings are read once from the process environment (optionally seeded from a
``.env`` file at the project root) into an immutable ``CrawlerSettings`` that is
passed explicitly to the catalog client, the graph store and the engine.

Environment variables:

- CLIENT_ID / SPOTIFY_CLIENT_ID, CLIENT_SECRET / SPOTIFY_CLIENT_SECRET (required)
- NEO4J_URI (default: bolt://localhost:7687)
- NEO4J_USERNAME / NEO4J_USER (default: neo4j), NEO4J_PASSWORD (required)
- NEO4J_DATABASE (optional)
- CRAWL_ROUNDS, CRAWL_ALBUM_FAN_OUT, CRAWL_ARTIST_CONCURRENCY, CRAWL_ON_ARTIST_ERROR
- CRAWL_EXCLUDE_EXPANDED (default: false; true keeps artists expanded in earlier
  rounds out of the frontier for the rest of the run)
- CATALOG_TIMEOUT, GRAPH_TIMEOUT, CATALOG_ALBUM_GROUPS
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from artistgraph.errors import ConfigError

ON_ERROR_CHOICES = ("skip", "abort")

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


@dataclass(frozen=True)
class CrawlerSettings:
    client_id: str
    client_secret: str
    neo4j_password: str
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_username: str = "neo4j"
    neo4j_database: Optional[str] = None
    rounds: int = 2
    album_fan_out: int = 10
    artist_concurrency: int = 4
    on_artist_error: str = "skip"
    catalog_timeout: float = 10.0
    graph_timeout: float = 30.0
    album_groups: str = "album"
    exclude_expanded: bool = False

    def __post_init__(self) -> None:
        if self.on_artist_error not in ON_ERROR_CHOICES:
            raise ConfigError(
                f"CRAWL_ON_ARTIST_ERROR must be one of {', '.join(ON_ERROR_CHOICES)}, got {self.on_artist_error!r}"
            )
        for field_name in ("rounds", "album_fan_out", "artist_concurrency"):
            if getattr(self, field_name) < 1:
                raise ConfigError(f"{field_name} must be >= 1")
        for field_name in ("catalog_timeout", "graph_timeout"):
            if getattr(self, field_name) <= 0:
                raise ConfigError(f"{field_name} must be > 0")

    def with_overrides(self, **changes) -> "CrawlerSettings":
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, *, load_dotenv: bool = True) -> "CrawlerSettings":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Raises ConfigError naming every missing required key.
        """
        if environ is None:
            if load_dotenv:
                load_env_file(os.path.join(_PROJECT_ROOT, ".env"))
            environ = os.environ

        def first(*keys: str) -> Optional[str]:
            for key in keys:
                val = (environ.get(key) or "").strip()
                if val:
                    return val
            return None

        client_id = first("CLIENT_ID", "SPOTIFY_CLIENT_ID")
        client_secret = first("CLIENT_SECRET", "SPOTIFY_CLIENT_SECRET")
        password = first("NEO4J_PASSWORD")

        missing = []
        if not client_id:
            missing.append("CLIENT_ID")
        if not client_secret:
            missing.append("CLIENT_SECRET")
        if not password:
            missing.append("NEO4J_PASSWORD")
        if missing:
            raise ConfigError(
                "One or more crawler settings are missing: " + ", ".join(missing) +
                "\nDefine them in your environment or in a .env file at the project root.\n"
                "Example:\n"
                "export CLIENT_ID=... CLIENT_SECRET=... NEO4J_URI=bolt://localhost:7687 "
                "NEO4J_USERNAME=neo4j NEO4J_PASSWORD=your_password"
            )

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            neo4j_password=password,
            neo4j_uri=first("NEO4J_URI") or cls.neo4j_uri,
            neo4j_username=first("NEO4J_USERNAME", "NEO4J_USER") or cls.neo4j_username,
            neo4j_database=first("NEO4J_DATABASE"),
            rounds=_parse_int(environ, "CRAWL_ROUNDS", cls.rounds),
            album_fan_out=_parse_int(environ, "CRAWL_ALBUM_FAN_OUT", cls.album_fan_out),
            artist_concurrency=_parse_int(environ, "CRAWL_ARTIST_CONCURRENCY", cls.artist_concurrency),
            on_artist_error=(first("CRAWL_ON_ARTIST_ERROR") or cls.on_artist_error).lower(),
            catalog_timeout=_parse_float(environ, "CATALOG_TIMEOUT", cls.catalog_timeout),
            graph_timeout=_parse_float(environ, "GRAPH_TIMEOUT", cls.graph_timeout),
            album_groups=first("CATALOG_ALBUM_GROUPS") or cls.album_groups,
            exclude_expanded=_parse_bool(environ, "CRAWL_EXCLUDE_EXPANDED", cls.exclude_expanded),
        )


def _parse_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _parse_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


def _parse_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (environ.get(key) or "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{key} must be true or false, got {raw!r}")


def load_env_file(env_path: str) -> None:
    """Load KEY=value lines from ``env_path`` into os.environ if present.

    Only sets variables that aren't already present in the process environment.
    """
    if not os.path.isfile(env_path):
        return
    with open(env_path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#"):
                continue
            if s.startswith("export "):
                s = s[len("export "):]
            if "=" not in s:
                continue
            key, val = s.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and (key not in os.environ or not os.environ[key]):
                os.environ[key] = val
