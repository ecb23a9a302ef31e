"""In-memory TTL cache.

Used for both cache tiers:
- Top-level resolved-value cache, owned by the engine, keyed by
  (name, source, key)
- Backend caches, owned by each adapter, keyed by whatever identifies a
  backend object (file path, secret path + version, URL)

Expiry is lazy: an entry read at time t is valid iff
t - inserted_at < ttl, otherwise it is evicted on that read. There is no
background sweep and no cross-tier invalidation.

The cache is a plain dict. Two threads computing the same value and both
inserting it is harmless, so no lock is taken.
"""

import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

# Default backend TTLs (seconds), reflecting backend volatility
CACHE_TTL_RESOLVED = 60.0  # top-level resolved values
CACHE_TTL_HTTP = 300.0
CACHE_TTL_VAULT = 300.0
CACHE_TTL_AWS = 300.0
CACHE_TTL_K8S = 120.0  # cluster resources change often

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    inserted_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int
    evictions: int
    ttl_seconds: float | None


class TTLCache:
    """Append-only map with lazy TTL eviction.

    Args:
        ttl: Entry lifetime in seconds. None means entries never expire
            (the owner validates them some other way, e.g. file mtime).
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, ttl: float | None = CACHE_TTL_RESOLVED, clock: Callable[[], float] | None = None):
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[Hashable, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or `default` on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default

        if self.ttl is not None and self._clock() - entry.inserted_at >= self.ttl:
            self._entries.pop(key, None)
            self._evictions += 1
            self._misses += 1
            return default

        self._hits += 1
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            ttl_seconds=self.ttl,
        )


def make_cache_key(*parts: str) -> str:
    """Build a string cache key from parts ("secret", "default", "db")."""
    return ":".join(parts)
