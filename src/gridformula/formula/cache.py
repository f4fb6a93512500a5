"""Bounded LRU cache used for parsed formulas and evaluation results."""

from collections import OrderedDict
from typing import Any, Hashable

# Marks a miss; None is a legitimate cached value.
MISSING: Any = object()


class LRUCache:
    """
    Least-recently-used cache with hit/miss counters.

    Not thread-safe; the engine evaluates synchronously on one thread.
    """

    def __init__(self, maxsize: int = 1000):
        """Initialize cache with maximum size."""
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._cache: OrderedDict[Hashable, Any] = OrderedDict()
        self._maxsize = maxsize
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._cache

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def get(self, key: Hashable) -> Any:
        """Get a cached value, or ``MISSING``."""
        if key in self._cache:
            self._hits += 1
            # Move to end (most recently used)
            self._cache.move_to_end(key)
            return self._cache[key]
        self._misses += 1
        return MISSING

    def put(self, key: Hashable, value: Any) -> None:
        """Store a value, evicting the least recently used entry when full."""
        if key in self._cache:
            self._cache.move_to_end(key)
        elif len(self._cache) >= self._maxsize:
            # Remove oldest entry
            self._cache.popitem(last=False)
        self._cache[key] = value

    def clear(self) -> None:
        """Clear the cache."""
        self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        return {
            "size": len(self._cache),
            "maxsize": self._maxsize,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0.0,
        }
