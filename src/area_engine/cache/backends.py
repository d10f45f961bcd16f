"""Key-value store backends with TTL and atomic set-if-absent.

Provides:
- MemoryCache: In-memory store with TTL (no external dependencies)
- RedisCache: Redis-backed store for multi-process deployments
- Cache: Abstract base class for custom backends
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)

# Redis TTL conventions
TTL_MISSING = -2
TTL_PERSISTENT = -1


@dataclass
class CacheEntry:
    """A single cache entry with expiration."""

    value: Any
    expires_at: float | None = None  # Unix timestamp, None = no expiration

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


class Cache(ABC):
    """Abstract base class for key-value stores."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Get value, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set value with optional TTL in seconds."""

    @abstractmethod
    def set_if_absent(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Atomically set value only if key is absent. Returns True if it was set."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key. Returns True if key existed."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -2 if missing, -1 if the key never expires."""

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns the number deleted."""

    @abstractmethod
    def clear(self) -> None:
        """Clear all values."""


class MemoryCache(Cache):
    """In-memory store with TTL support.

    Thread-safe; suitable for single-process deployments and tests.
    Expired entries are dropped lazily on access and every
    ``cleanup_interval`` writes. When full, expired entries are purged
    first and the oldest live entry is evicted only if that frees nothing.

    Args:
        max_size: Maximum number of entries (default 10000, None for unbounded)
        cleanup_interval: Purge expired entries every N writes (default 100)
    """

    def __init__(self, max_size: int | None = 10000, cleanup_interval: int = 100):
        self._cache: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._max_size = max_size
        self._cleanup_interval = cleanup_interval
        self._write_count = 0

    def _live_entry(self, key: str) -> CacheEntry | None:
        """Return the entry if present and not expired. Must be called with lock held."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._cache[key]
            return None
        return entry

    def _purge_expired(self) -> None:
        """Drop every expired entry. Must be called with lock held."""
        now = time.time()
        for expired in [k for k, v in self._cache.items() if v.is_expired(now)]:
            del self._cache[expired]

    def _store(self, key: str, value: Any, ttl: int | None) -> None:
        """Store an entry. Must be called with lock held."""
        self._write_count += 1
        if self._write_count >= self._cleanup_interval:
            self._write_count = 0
            self._purge_expired()

        if (
            self._max_size is not None
            and len(self._cache) >= self._max_size
            and key not in self._cache
        ):
            self._purge_expired()
            if len(self._cache) >= self._max_size:
                # FIFO eviction
                evicted = next(iter(self._cache))
                del self._cache[evicted]
                logger.warning(f"Store full ({self._max_size} keys), evicted live key {evicted}")

        expires_at = time.time() + ttl if ttl else None
        self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry else None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        with self._lock:
            self._store(key, value, ttl)

    def set_if_absent(self, key: str, value: Any, ttl: int | None = None) -> bool:
        with self._lock:
            if self._live_entry(key) is not None:
                return False
            self._store(key, value, ttl)
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return TTL_MISSING
            if entry.expires_at is None:
                return TTL_PERSISTENT
            return max(0, int(round(entry.expires_at - time.time())))

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._cache if k.startswith(prefix)]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def size(self) -> int:
        """Current number of entries (including not-yet-purged expired ones)."""
        return len(self._cache)


class RedisCache(Cache):
    """Redis-backed store.

    Args:
        url: Redis URL (default: redis://localhost:6379/0)
        prefix: Key prefix for namespacing (default: "" so keys are used verbatim)
        client: Pre-built redis client, mainly for tests
    """

    SCAN_COUNT = 100

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "",
        client=None,
    ):
        self._url = url
        self._prefix = prefix
        self._client = client

    def _get_client(self):
        """Lazy-load Redis client."""
        if self._client is None:
            import redis

            self._client = redis.from_url(self._url)
        return self._client

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Any | None:
        data = self._get_client().get(self._make_key(key))
        if data is None:
            return None
        try:
            return json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return data.decode() if isinstance(data, bytes) else data

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        data = json.dumps(value, default=str)
        if ttl:
            self._get_client().setex(self._make_key(key), ttl, data)
        else:
            self._get_client().set(self._make_key(key), data)

    def set_if_absent(self, key: str, value: Any, ttl: int | None = None) -> bool:
        # SET key value NX [EX ttl] is a single atomic command
        result = self._get_client().set(
            self._make_key(key), json.dumps(value, default=str), nx=True, ex=ttl or None
        )
        return bool(result)

    def delete(self, key: str) -> bool:
        return self._get_client().delete(self._make_key(key)) > 0

    def exists(self, key: str) -> bool:
        return self._get_client().exists(self._make_key(key)) > 0

    def ttl(self, key: str) -> int:
        return int(self._get_client().ttl(self._make_key(key)))

    def delete_prefix(self, prefix: str) -> int:
        client = self._get_client()
        deleted = 0
        for batch in self._scan_batches(client, f"{self._make_key(prefix)}*"):
            deleted += client.delete(*batch)
        return deleted

    def clear(self) -> None:
        self.delete_prefix("")

    def _scan_batches(self, client, pattern: str):
        """Yield non-empty key batches for pattern using SCAN."""
        cursor = 0
        while True:
            cursor, keys = client.scan(cursor=cursor, match=pattern, count=self.SCAN_COUNT)
            if keys:
                yield keys
            if cursor == 0:
                break


# Global cache instance
_cache: Cache | None = None


def get_cache() -> Cache:
    """Get or create the global store.

    Uses RedisCache when AREA_REDIS_URL is set, otherwise MemoryCache.
    """
    global _cache

    if _cache is None:
        _cache = create_cache()

    return _cache


def create_cache(settings=None) -> Cache:
    """Create a store from settings (defaults to the global settings)."""
    if settings is None:
        from area_engine.config import get_settings

        settings = get_settings()

    redis_url = settings.redis_url
    if redis_url:
        logger.info("Using Redis dedup store")
        return RedisCache(url=redis_url)

    logger.debug("Using in-memory dedup store")
    # dedup keys must live out their TTL, so no size cap; expiry bounds the store
    return MemoryCache(max_size=None)


def reset_cache() -> None:
    """Reset the global cache instance. Useful for testing."""
    global _cache
    _cache = None
