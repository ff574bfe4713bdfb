# knee_scraper/crawler/registry.py
"""
Visited registry: the set of normalized URLs already fetched in a run.
"""
from __future__ import annotations

import threading
from typing import Iterable, Iterator, MutableSet, Optional, Set

from knee_scraper.utils import normalize_url


class VisitedRegistry:
    """Append-only set of normalized URLs.

    Every operation holds an internal lock, so one registry may be shared by
    concurrent runs. Before fetching, a run takes the URL with :meth:`reserve`
    (check-then-mark in one critical section, covering URLs still in flight),
    then :meth:`commit` after a successful fetch or :meth:`release` after a
    failed one. A caller-supplied ``set`` is adopted and mutated in place;
    it only ever receives visited URLs, never in-flight ones.
    """

    def __init__(self, initial: Optional[Iterable[str]] = None) -> None:
        self._lock = threading.Lock()
        self._pending: Set[str] = set()
        if isinstance(initial, set):
            self._urls: MutableSet[str] = initial
            normalized = {normalize_url(u) for u in initial}
            initial.clear()
            initial.update(normalized)
        else:
            self._urls = {normalize_url(u) for u in (initial or ())}

    def contains(self, url: str) -> bool:
        key = normalize_url(url)
        with self._lock:
            return key in self._urls

    def mark_visited(self, url: str) -> None:
        key = normalize_url(url)
        with self._lock:
            self._pending.discard(key)
            self._urls.add(key)

    def claim(self, url: str) -> bool:
        """Mark *url* visited; return False if it already was or is being fetched."""
        key = normalize_url(url)
        with self._lock:
            if key in self._urls or key in self._pending:
                return False
            self._urls.add(key)
            return True

    def reserve(self, url: str) -> bool:
        """Take *url* for fetching; return False if it is visited or already in flight."""
        key = normalize_url(url)
        with self._lock:
            if key in self._urls or key in self._pending:
                return False
            self._pending.add(key)
            return True

    def commit(self, url: str) -> None:
        """Turn a reservation into a visited entry."""
        self.mark_visited(url)

    def release(self, url: str) -> None:
        """Drop a reservation without marking the URL visited."""
        key = normalize_url(url)
        with self._lock:
            self._pending.discard(key)

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and self.contains(url)

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(sorted(self._urls))

    def __repr__(self) -> str:
        return f"<VisitedRegistry size={len(self)}>"
