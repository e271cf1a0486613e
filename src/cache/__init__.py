"""Analysis cache stores."""

from cache.store import (
    CacheStats,
    CacheStore,
    FileCacheStore,
    MemoryCacheStore,
    analysis_cache_key,
    content_hash,
    parse_cache_key,
)

__all__ = [
    "CacheStats",
    "CacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    "analysis_cache_key",
    "content_hash",
    "parse_cache_key",
]
