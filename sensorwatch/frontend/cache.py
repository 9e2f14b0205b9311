"""
In-memory query cache for the dashboard.

Entries are keyed by collection + serialized constraints (or collection +
document id) and stay valid for a fixed TTL. Writes against a collection
must invalidate every entry derived from it, see ``invalidate_prefix``.

One cache is created per dashboard and handed to the bindings that share it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from sensorwatch.frontend.constraints import Constraint, serialize_all

CACHE_TTL_SECONDS = 30.0


def collection_key(collection: str, constraints: Sequence[Constraint] = ()) -> str:
    """Cache key for a collection query. Equal constraint lists give equal keys."""
    return f"{collection}:{serialize_all(constraints)}"


def document_key(collection: str, doc_id: str) -> str:
    return f"{collection}:doc:{doc_id}"


@dataclass
class CacheEntry:
    records: List[Dict[str, Any]]
    captured_at: float


class QueryCache:
    """
    TTL cache of query results.

    Attributes:
        ttl: Entry lifetime in seconds
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` if it is younger than the TTL."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self.clock() - entry.captured_at >= self.ttl:
                del self._entries[key]
                return None
            return entry

    def put(self, key: str, records: List[Dict[str, Any]]) -> CacheEntry:
        entry = CacheEntry(records=list(records), captured_at=self.clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, collection: str) -> int:
        """
        Drop every entry derived from ``collection``.

        Matches on ``"<collection>:"`` so that ``devices`` does not take
        ``devices/abc/readings`` with it.

        Returns:
            Number of entries removed
        """
        prefix = f"{collection}:"
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        """Number of live entries; expired ones are not counted."""
        with self._lock:
            now = self.clock()
            return sum(1 for entry in self._entries.values() if now - entry.captured_at < self.ttl)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
