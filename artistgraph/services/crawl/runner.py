from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import Dict, List, Mapping, Optional, Tuple

from artistgraph.config import ON_ERROR_CHOICES, CrawlerSettings
from artistgraph.db.neo4j_connector import Neo4jGraphStore
from artistgraph.errors import ConfigError, CrawlerError, GraphStoreError
from artistgraph.services.catalog.client import CatalogClient
from artistgraph.services.crawl.expansion import ExpansionEngine, RoundReport
from artistgraph.services.crawl.frontier import Frontier
from artistgraph.services.graph.admin import count_nodes_by_label

logger = logging.getLogger(__name__)

DEFAULT_SEEDS: Dict[str, str] = {
    "spotify:artist:4Z8W4fKeB5YxbusRsdQVPb": "radiohead",
    "spotify:artist:6styCzc1Ej4NxISL0LiigM": "the_smile",
    "spotify:artist:7tA9Eeeb68kkiG9Nrvuzmi": "atoms_for_peace",
}


async def run_rounds(engine: ExpansionEngine, frontier: Frontier, rounds: int) -> List[RoundReport]:
    """Run ``rounds`` expansion rounds one after another."""
    reports: List[RoundReport] = []
    for _ in range(rounds):
        if not len(frontier):
            logger.info("Frontier is empty; stopping after %d rounds", len(reports))
            break
        reports.append(await engine.expand(frontier))
    return reports


async def run_crawl(
    settings: CrawlerSettings,
    seeds: Optional[Mapping[str, str]] = None,
    *,
    rounds: Optional[int] = None,
    catalog=None,
    store=None,
    ensure_constraints: bool = True,
) -> List[RoundReport]:
    """Crawl from ``seeds`` for ``rounds`` rounds (defaults from settings).

    Adapters passed in are used as-is and left open; adapters created here are closed.
    """
    own_catalog = catalog is None
    own_store = store is None
    catalog = catalog or CatalogClient.from_settings(settings)
    try:
        store = store or Neo4jGraphStore.from_settings(settings)
        try:
            await store.verify_connectivity()
            if ensure_constraints:
                await store.ensure_constraints()
            engine = ExpansionEngine.from_settings(settings, catalog, store)
            frontier = Frontier(seeds if seeds is not None else DEFAULT_SEEDS)
            reports = await run_rounds(engine, frontier, rounds or settings.rounds)
            try:
                counts = await count_nodes_by_label(store)
                logger.info("Graph now holds %s", ", ".join(f"{k}={v}" for k, v in counts.items()))
            except GraphStoreError as exc:
                logger.warning("Could not count graph nodes: %s", exc)
            logger.info("Stopped with %d artists left in the frontier", len(frontier))
            return reports
        finally:
            if own_store and store is not None:
                await store.close()
    finally:
        if own_catalog:
            await catalog.aclose()


def parse_seed(value: str) -> Tuple[str, str]:
    """Parse ``URI=NAME`` (or a bare URI) into ``(uri, name)``."""
    uri, _, name = value.partition("=")
    uri = uri.strip()
    if not uri.startswith("spotify:artist:"):
        raise argparse.ArgumentTypeError(f"expected spotify:artist:<id>[=name], got {value!r}")
    return uri, name.strip() or uri


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Expand the artist collaboration graph")
    parser.add_argument("--rounds", type=int, help="Number of expansion rounds (default: CRAWL_ROUNDS or 2)")
    parser.add_argument(
        "--seed",
        action="append",
        type=parse_seed,
        metavar="URI=NAME",
        help="Seed artist; repeat for several (default: built-in seed set)",
    )
    parser.add_argument("--on-artist-error", choices=ON_ERROR_CHOICES,
                        help="skip a failing artist or abort the round")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL") or "INFO")
    parser.add_argument("--exclude-expanded", action="store_true",
                        help="Keep artists expanded in earlier rounds out of the frontier")
    parser.add_argument("--no-constraints", action="store_true",
                        help="Do not create uniqueness constraints before crawling")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = CrawlerSettings.from_env().with_overrides(
            rounds=args.rounds,
            on_artist_error=args.on_artist_error,
            exclude_expanded=args.exclude_expanded or None,
        )
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2

    seeds = dict(args.seed) if args.seed else None
    try:
        reports = asyncio.run(
            run_crawl(settings, seeds, ensure_constraints=not args.no_constraints)
        )
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2
    except CrawlerError as exc:
        logger.error("Crawl failed: %s", exc)
        return 1

    for r in reports:
        print(
            f"round {r.round_number}: visited={len(r.visited)} failed={len(r.failed_artists)} "
            f"ops={r.operations_applied} op_failures={r.operations_failed} "
            f"discovered={r.discovered} frontier={r.frontier_size}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
