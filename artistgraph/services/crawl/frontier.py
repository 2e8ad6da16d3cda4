from __future__ import annotations

from typing import Dict, Iterable, Iterator, Mapping, Optional


class Frontier:
    """Artists waiting to be expanded, as {uri: display name}.

    Owned by a single ExpansionEngine for the duration of a round; never persisted.
    """

    def __init__(self, seeds: Optional[Mapping[str, str]] = None) -> None:
        self._entries: Dict[str, str] = dict(seeds or {})

    def snapshot(self) -> Dict[str, str]:
        return dict(self._entries)

    def add_missing(self, candidates: Mapping[str, str]) -> int:
        """Add candidates not already present. Returns how many were added."""
        added = 0
        for uri, name in candidates.items():
            if uri not in self._entries:
                self._entries[uri] = name
                added += 1
        return added

    def discard(self, uris: Iterable[str]) -> None:
        for uri in uris:
            self._entries.pop(uri, None)

    def __contains__(self, uri: object) -> bool:
        return uri in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Frontier({len(self._entries)} artists)"
