"""Response caching."""

from services.data_access.app.cache.manager import CacheEntry, CacheLookup, CacheManager, CacheStatus
from services.data_access.app.cache.mirror import CacheMirror, FileMirror, MemoryMirror

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheManager",
    "CacheStatus",
    "CacheMirror",
    "FileMirror",
    "MemoryMirror",
]
