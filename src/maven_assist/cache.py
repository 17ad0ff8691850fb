"""In-memory cache of dependency analysis results, gated by TTL and pom.xml mtime."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class CacheEntry:
    payload: str
    created_at: float
    source_mtime: int


class ResultCache:
    """Analysis payloads keyed by pom.xml path.

    An entry is served only while it is younger than the TTL and the pom.xml
    still has the modification time it was computed from. The lock is only
    held for single dictionary operations, never while a result is computed.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _valid(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at < self.ttl_seconds

    def get(self, pom_path: str, source_mtime: int) -> str | None:
        """Return the cached payload, or None if absent, expired or stale."""
        with self._lock:
            entry = self._entries.get(pom_path)
        if entry is None:
            return None
        if entry.source_mtime != source_mtime or not self._valid(entry, self._clock()):
            return None
        return entry.payload

    def put(self, pom_path: str, source_mtime: int, payload: str) -> None:
        entry = CacheEntry(payload=payload, created_at=self._clock(), source_mtime=source_mtime)
        with self._lock:
            self._entries[pom_path] = entry

    def cleanup_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not self._valid(entry, now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def invalidate(self, pom_path: str) -> None:
        with self._lock:
            self._entries.pop(pom_path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
