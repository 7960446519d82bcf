"""
Image Cache Manager

In-memory cache for transformed images with:
- TTL (Time To Live) expiry, checked on every lookup
- Opportunistic sweeping of expired entries
- Last-writer-wins stores (no request coalescing)
"""

import random
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A transformed image. Never mutated after insertion."""
    key: str
    data: bytes
    content_type: str
    created_at: float

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def age(self, now: float) -> float:
        return now - self.created_at


class ImageCacheManager:
    """
    Process-local image cache keyed by transform cache key.

    One instance is created at application startup and shared by all
    requests. Entries are whole immutable values, so a concurrent lookup
    sees either the old entry or the new one, never a partial write.
    """

    def __init__(
        self,
        cache_ttl_seconds: float = 60 * 60,
        sweep_probability: float = 0.01,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.cache_ttl_seconds = cache_ttl_seconds
        self.sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng or random.Random()

        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return entry.age(now) > self.cache_ttl_seconds

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """
        Get a cached entry by key.

        Returns:
            The entry if present and not older than the TTL, None otherwise.
            An expired entry is dropped on the way out.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._is_expired(entry, self._clock()):
            logger.debug(f"[ImageCache] Expired: {key[:16]}")
            self._entries.pop(key, None)
            self._misses += 1
            return None

        self._hits += 1
        return entry

    def store(self, key: str, data: bytes, content_type: str) -> CacheEntry:
        """Insert or overwrite the entry for key."""
        entry = CacheEntry(
            key=key,
            data=data,
            content_type=content_type,
            created_at=self._clock(),
        )
        self._entries[key] = entry
        logger.debug(f"[ImageCache] Cached: {key[:16]} ({len(data)} bytes)")
        return entry

    def sweep(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            key
            for key, entry in list(self._entries.items())
            if self._is_expired(entry, now)
        ]
        for key in expired:
            self._entries.pop(key, None)

        if expired:
            logger.info(f"[ImageCache] Cleaned up {len(expired)} expired entries")
        return len(expired)

    def maybe_sweep(self) -> int:
        """Sweep with probability `sweep_probability`."""
        if self._rng.random() < self.sweep_probability:
            return self.sweep()
        return 0

    def clear(self) -> int:
        """
        Clear all cached images.

        Returns:
            Number of entries removed.
        """
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"[ImageCache] Cleared all {count} entries")
        return count

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total_size = sum(entry.size_bytes for entry in list(self._entries.values()))
        lookups = self._hits + self._misses
        return {
            "total_entries": len(self._entries),
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(self._hits / lookups * 100, 1) if lookups else 0.0,
            "cache_ttl_seconds": self.cache_ttl_seconds,
        }
