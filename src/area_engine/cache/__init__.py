"""Key-value store used for webhook idempotency.

Usage:
    from area_engine.cache import get_cache

    store = get_cache()
    if store.set_if_absent("webhook:dedup:github:abc", "1", ttl=1800):
        ...
"""

from area_engine.cache.backends import (
    TTL_MISSING,
    TTL_PERSISTENT,
    Cache,
    MemoryCache,
    RedisCache,
    create_cache,
    get_cache,
    reset_cache,
)

__all__ = [
    "TTL_MISSING",
    "TTL_PERSISTENT",
    "Cache",
    "MemoryCache",
    "RedisCache",
    "create_cache",
    "get_cache",
    "reset_cache",
]
