"""Crawling subsystem.

Structure:
- frontier.py: the round-scoped set of artists still to expand
- discography.py: concurrent album listing + sequential full-album resolution
- expansion.py: one expansion round (visit, compile, apply, refresh frontier)
- runner.py: sequential driver and CLI entrypoint
"""

__all__ = [
    "discography",
    "expansion",
    "frontier",
    "runner",
]
