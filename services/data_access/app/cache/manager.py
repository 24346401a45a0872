"""In-memory response cache with stale-while-revalidate and a durable mirror."""

import copy
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

from services.data_access.app.cache.mirror import CacheMirror
from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_LOOKUPS

logger = get_logger(__name__)

DEFAULT_TTL = 300.0  # 5 minutes
DEFAULT_MAX_SIZE = 1000


class CacheStatus(str, Enum):
    """Result of a cache lookup."""

    FRESH = "fresh"  # Serve without a network call
    STALE = "stale"  # Serve, then revalidate in the background
    MISS = "miss"


@dataclass
class CacheEntry:
    """A cached payload.

    Fresh while younger than stale_time, servable until ttl, gone after.
    """

    key: str
    data: Any
    timestamp: float
    ttl: float
    stale_time: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def to_record(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "stale_time": self.stale_time,
        }


@dataclass(frozen=True)
class CacheLookup:
    """Cache lookup outcome."""

    status: CacheStatus
    entry: CacheEntry | None = None


class CacheManager:
    """Keyed response cache shared by request instances.

    Writes are last-write-wins. Every write is mirrored best-effort; mirror
    failures are logged and never fail the in-memory operation. Expired
    entries are swept on write and the least recently used entry is evicted
    once max_size is reached.
    """

    def __init__(
        self,
        mirror: CacheMirror | None = None,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache manager.

        Args:
            mirror: Durable mirror for entries (optional)
            default_ttl: TTL used when set() is given none, in seconds
            max_size: Maximum number of in-memory entries
            clock: Wall-clock source; mirrored timestamps must survive restarts
        """
        self.mirror = mirror
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_valid(self, entry: CacheEntry) -> bool:
        return entry.age(self._clock()) < entry.ttl

    def is_fresh(self, entry: CacheEntry) -> bool:
        """Check whether an entry can be served without revalidation."""
        return entry.age(self._clock()) < entry.stale_time

    def is_stale(self, entry: CacheEntry) -> bool:
        """Check whether an entry is past its best-by but still servable."""
        age = entry.age(self._clock())
        return entry.stale_time <= age < entry.ttl

    def get(self, key: str) -> CacheEntry | None:
        """Get a servable entry, destroying it if expired.

        Falls back to the durable mirror on an in-memory miss.

        Args:
            key: Cache key

        Returns:
            Copy of the entry, or None if absent or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = self._hydrate(key)
            if entry is None:
                return None

        if not self._is_valid(entry):
            logger.debug("cache_entry_expired", key=key)
            self.invalidate(key)
            return None

        self._entries.move_to_end(key)
        return replace(entry, data=copy.deepcopy(entry.data))

    def lookup(self, key: str) -> CacheLookup:
        """Classify a key as fresh, stale or missing."""
        entry = self.get(key)
        if entry is None:
            status = CacheStatus.MISS
        elif self.is_fresh(entry):
            status = CacheStatus.FRESH
        else:
            status = CacheStatus.STALE
        CACHE_LOOKUPS.labels(result=status.value).inc()
        return CacheLookup(status=status, entry=entry)

    def set(
        self,
        key: str,
        data: Any,
        ttl: float | None = None,
        stale_time: float | None = None,
    ) -> CacheEntry:
        """Store a payload.

        Args:
            key: Cache key
            data: Payload to cache (copied)
            ttl: Seconds the entry stays servable
            stale_time: Seconds the entry stays fresh; clamped to ttl

        Returns:
            The stored entry
        """
        ttl = self.default_ttl if ttl is None else ttl
        if stale_time is None or stale_time <= 0:
            stale_time = ttl
        elif stale_time > ttl:
            logger.warning("cache_stale_time_clamped", key=key, stale_time=stale_time, ttl=ttl)
            stale_time = ttl

        entry = CacheEntry(
            key=key,
            data=copy.deepcopy(data),
            timestamp=self._clock(),
            ttl=ttl,
            stale_time=stale_time,
        )
        self._store(entry)
        self._mirror_put(entry)
        return entry

    def invalidate(self, key: str) -> None:
        """Drop an entry from memory and from the mirror."""
        self._entries.pop(key, None)
        self._mirror_delete(key)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every in-memory entry whose key starts with prefix.

        Returns:
            Number of entries dropped
        """
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            self.invalidate(key)
        return len(keys)

    def clear(self) -> None:
        """Drop every in-memory entry and its mirrored copy."""
        for key in list(self._entries):
            self.invalidate(key)

    def _cleanup_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.age(now) >= entry.ttl]
        for key in expired:
            self.invalidate(key)
        if expired:
            logger.debug("cache_expired_swept", count=len(expired))

    def _store(self, entry: CacheEntry) -> None:
        self._cleanup_expired()
        self._entries.pop(entry.key, None)
        while self._entries and len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._mirror_delete(evicted)
            logger.debug("cache_entry_evicted", key=evicted)
        self._entries[entry.key] = entry

    def _mirror_put(self, entry: CacheEntry) -> None:
        if self.mirror is None:
            return
        try:
            self.mirror.put(entry.key, entry.to_record())
        except Exception as e:
            logger.warning("cache_mirror_write_failed", key=entry.key, error=str(e))

    def _mirror_delete(self, key: str) -> None:
        if self.mirror is None:
            return
        try:
            self.mirror.delete(key)
        except Exception as e:
            logger.warning("cache_mirror_delete_failed", key=key, error=str(e))

    def _hydrate(self, key: str) -> CacheEntry | None:
        if self.mirror is None:
            return None
        try:
            record = self.mirror.get(key)
        except Exception as e:
            logger.warning("cache_mirror_read_failed", key=key, error=str(e))
            return None
        if not record:
            return None
        try:
            entry = CacheEntry(
                key=key,
                data=record["data"],
                timestamp=float(record["timestamp"]),
                ttl=float(record["ttl"]),
                stale_time=float(record.get("stale_time", record["ttl"])),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("cache_mirror_record_invalid", key=key, error=str(e))
            return None
        self._store(entry)
        logger.debug("cache_entry_hydrated", key=key)
        return entry
