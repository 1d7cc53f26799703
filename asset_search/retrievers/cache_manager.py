"""In-process LRU cache for query embeddings."""

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

logger = structlog.get_logger("search_service.embedding_cache")


@dataclass(frozen=True)
class CacheEntry:
    """A cached embedding under its normalized key."""
    normalized_key: str
    vector: Tuple[float, ...]


class EmbeddingCache:
    """Bounded least-recently-used cache from query text to embedding.

    Keys are trimmed and case-folded so trivially different spellings of the
    same query share one entry. Every ``get``/``set`` holds an internal lock
    for the duration of the call only.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def normalize_key(query: str) -> str:
        return query.strip().casefold()

    def get(self, query: str) -> Optional[List[float]]:
        """Return a copy of the cached vector, refreshing its recency."""
        key = self.normalize_key(query)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return list(entry.vector)

    def set(self, query: str, vector: Sequence[float]) -> None:
        """Store a vector, evicting the least recently used entry when full."""
        key = self.normalize_key(query)
        entry = CacheEntry(
            normalized_key=key,
            vector=tuple(float(v) for v in vector),
        )

        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Embedding cache eviction", evicted_key=evicted_key[:50])
            self._entries[key] = entry

    def metrics(self) -> Dict[str, float]:
        """Return hits, misses, evictions, size and hit_rate (0..1)."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": len(self._entries),
                "hit_rate": self._hits / total if total else 0.0,
            }

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)
