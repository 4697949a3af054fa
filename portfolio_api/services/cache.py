"""
CacheStore - Thread-safe in-memory cache with per-entry TTL.

Features:
- Per-entry expiry, checked lazily on read
- Periodic background sweep of expired entries
- Safe to share between concurrent tasks and threads
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T")

STALE_SUFFIX = ":stale"


def stale_key(key: str) -> str:
    """Return the long-TTL shadow key for a primary cache key."""
    return f"{key}{STALE_SUFFIX}"


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry."""

    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore:
    """
    In-memory key/value store with TTL and a background sweep.

    Usage:
        cache = CacheStore(cleanup_interval=60)

        cached = cache.get("github:contributions")
        if cached is None:
            data = await fetch_data()
            cache.set("github:contributions", data, ttl_seconds=900)

        cache.close()  # stops the sweep thread
    """

    def __init__(
        self,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
        start_sweeper: bool = True,
    ):
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._debug = debug
        self._stats = CacheStats()

        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None
        if start_sweeper:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def now(self) -> float:
        """Current time according to the store's clock (epoch seconds)."""
        return self._clock()

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store value under key, replacing any existing entry."""
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)
        with self._lock:
            self._entries[key] = entry
        self._log(f"SET: {key} (TTL: {ttl_seconds}s)")

    def get(self, key: str) -> Any | None:
        """
        Get value from cache.

        Returns None if the key is absent or expired. Expired entries are
        evicted as a side effect.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                self._stats.expirations += 1
                entry = None

            if entry is None:
                self._stats.misses += 1
            else:
                self._stats.hits += 1

        if entry is None:
            self._log(f"MISS: {key}")
            return None

        self._log(f"HIT: {key}")
        return entry.value

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            self._log(f"DELETE: {key}")
        return removed

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache cleared: {count} entries removed")

    def size(self) -> int:
        """Number of physically stored entries, expired ones included."""
        with self._lock:
            return len(self._entries)

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        with self._lock:
            snapshot = list(self._entries.items())

        expired = [key for key, entry in snapshot if entry.is_expired(now)]

        removed = 0
        for key in expired:
            with self._lock:
                # Entry may have been replaced since the snapshot was taken
                current = self._entries.get(key)
                if current is not None and current.is_expired(now):
                    del self._entries[key]
                    removed += 1

        with self._lock:
            self._stats.sweeps += 1
            self._stats.expirations += removed

        if removed:
            logger.debug(f"Cache cleanup: {removed} expired entries removed")
        return removed

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            try:
                self.cleanup_expired()
            except Exception as e:
                logger.error(f"Cache cleanup failed: {e}")

    def close(self) -> None:
        """Stop the background sweep. Safe to call more than once."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
            logger.debug("Cache cleanup timer stopped")

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def __enter__(self) -> "CacheStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        with self._lock:
            self._stats.size = len(self._entries)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheStore] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    sweeps: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "sweeps": self.sweeps,
            "size": self.size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
