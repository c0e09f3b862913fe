"""Tag-indexed in-memory cache.

Entries are stored under hashable keys and carry a set of string tags. A
write to the underlying data invalidates by tag, which removes every entry
carrying any of those tags regardless of key.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS: Optional[float] = 300.0
DEFAULT_MAX_ENTRIES = 1000

_UNSET: Any = object()


@dataclass
class CacheEntry:
    value: Any
    tags: frozenset[str]
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class _Stats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0
    computes: int = 0


class TaggedCache:
    """Thread-safe key/value cache with tag invalidation, TTL and FIFO bound.

    Example:
        cache = TaggedCache(ttl_seconds=300, max_entries=1000)
        value = cache.get_or_compute(("month", "2024-06"), compute, tags={"calendar:month:2024-06"})

        # After an event in June changes
        cache.invalidate_tags(["calendar:month:2024-06"])

    There is no single-flight guarantee: ``compute`` runs outside the lock, so
    two concurrent misses for the same key may both compute and the last
    writer wins.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            ttl_seconds: Default entry lifetime; None disables expiry
            max_entries: Maximum number of entries (FIFO eviction when full)
            clock: Monotonic clock, injectable for tests
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._tag_index: dict[str, set[Hashable]] = {}
        self._lock = threading.RLock()
        self._stats = _Stats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _UNSET, record=False) is not _UNSET

    def _expiry(self, ttl: Any) -> Optional[float]:
        seconds = self.ttl_seconds if ttl is _UNSET else ttl
        if seconds is None:
            return None
        return self._clock() + seconds

    def _remove(self, key: Hashable) -> Optional[CacheEntry]:
        # Caller holds the lock
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]
        return entry

    def get(self, key: Hashable, default: Any = None, *, record: bool = True) -> Any:
        """Return the cached value for ``key`` or ``default`` when missing/expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expired(self._clock()):
                self._remove(key)
                self._stats.expirations += 1
                logger.debug("Cache entry expired: %s", key)
                entry = None

            if entry is None:
                if record:
                    self._stats.misses += 1
                    logger.debug("Cache miss for key: %s", key)
                return default

            if record:
                self._stats.hits += 1
                logger.debug("Cache hit for key: %s", key)
            return entry.value

    def set(
        self,
        key: Hashable,
        value: Any,
        tags: Iterable[str] = (),
        ttl: Any = _UNSET,
    ) -> None:
        """Store ``value`` under ``key`` with ``tags``.

        Args:
            key: Hashable cache key
            value: Value to cache
            tags: Invalidation tags for this entry
            ttl: Lifetime in seconds; omitted uses the cache default, None never expires
        """
        entry = CacheEntry(value=value, tags=frozenset(tags), expires_at=self._expiry(ttl))
        with self._lock:
            # Re-setting a key moves it to the back of the FIFO order
            self._remove(key)
            self._entries[key] = entry
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(key)

            while len(self._entries) > self.max_entries:
                oldest_key = next(iter(self._entries))
                self._remove(oldest_key)
                self._stats.evictions += 1
                logger.debug(
                    "Evicted oldest cache entry: %s (cache size: %d/%d)",
                    oldest_key,
                    len(self._entries),
                    self.max_entries,
                )

        logger.debug("Cached key %s with tags %s", key, sorted(entry.tags))

    def delete(self, key: Hashable) -> bool:
        """Remove ``key``. Returns True when an entry was removed."""
        with self._lock:
            return self._remove(key) is not None

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Remove every entry carrying any of ``tags``.

        Returns:
            Number of entries removed
        """
        tag_list = [tag for tag in tags if tag]
        with self._lock:
            keys: set[Hashable] = set()
            for tag in tag_list:
                keys.update(self._tag_index.get(tag, ()))
            for key in keys:
                self._remove(key)
            self._stats.invalidations += 1

        if keys:
            logger.info("Invalidated %d cache entries for tags %s", len(keys), tag_list)
        else:
            logger.debug("No cache entries for tags %s", tag_list)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
            self._tag_index.clear()
        logger.info("Cleared cache (%d entries)", size)

    def get_or_compute(
        self,
        key: Hashable,
        compute: Callable[[], T],
        tags: Union[Iterable[str], Callable[[T], Iterable[str]]] = (),
        ttl: Any = _UNSET,
    ) -> T:
        """Return the cached value for ``key``, computing and storing it on a miss.

        ``tags`` may be a callable deriving the tags from the computed value.
        Exceptions raised by ``compute`` propagate and nothing is stored.
        """
        cached = self.get(key, _UNSET)
        if cached is not _UNSET:
            return cached

        value = compute()
        with self._lock:
            self._stats.computes += 1
        if callable(tags):
            tags = tags(value)
        self.set(key, value, tags, ttl)
        return value

    def tags_for(self, key: Hashable) -> frozenset[str]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.tags if entry is not None else frozenset()

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with hits, misses, hit_rate (0-100), evictions, expirations,
            invalidations, computes, current_size, max_entries, tag_count and
            ttl_seconds
        """
        with self._lock:
            stats = self._stats
            total_requests = stats.hits + stats.misses
            hit_rate = (stats.hits / total_requests * 100) if total_requests > 0 else 0.0
            return {
                "hits": stats.hits,
                "misses": stats.misses,
                "hit_rate": round(hit_rate, 2),
                "evictions": stats.evictions,
                "expirations": stats.expirations,
                "invalidations": stats.invalidations,
                "computes": stats.computes,
                "current_size": len(self._entries),
                "max_entries": self.max_entries,
                "tag_count": len(self._tag_index),
                "ttl_seconds": self.ttl_seconds,
            }

    def clear_stats(self) -> None:
        """Clear cache statistics (useful for testing)."""
        with self._lock:
            self._stats = _Stats()
