"""Read-through caching with eager invalidation.

Reads go cache -> store on miss -> cache populate. Writes commit to the
store first and then delete the exact keys they made stale, before the
response is returned. Entries also carry a TTL, so a missed invalidation
(cache outage, or a reader repopulating a key while a write is in flight)
is stale for at most one TTL.

Cache failures never escape this module: reads fall back to the loader and
failed invalidations are logged and counted. Errors raised by the loader
(store errors) propagate unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from .cache import Cache
from .exceptions import CacheError

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "tasks"
ALL_TASKS_KEY = f"{KEY_PREFIX}:all"
TASK_KEY_PATTERN = f"{KEY_PREFIX}:*"


def task_key(task_id: int) -> str:
    """Cache key for a single task."""
    return f"{KEY_PREFIX}:{int(task_id)}"


def keys_for_write(task_id: int) -> List[str]:
    """Every key a create, update or delete of task_id can make stale."""
    return [ALL_TASKS_KEY, task_key(task_id)]


@dataclass
class CacheCounters:
    hits: int = 0
    misses: int = 0
    errors: int = 0
    invalidation_failures: int = 0


@dataclass(frozen=True)
class CacheRead(Generic[T]):
    """Result of a read-through: the value and whether the cache served it."""

    value: T
    cached: bool


class ReadThroughCache:
    """Consistency layer between the request handlers and a Cache backend."""

    def __init__(self, backend: Cache) -> None:
        self.backend = backend
        self._counters = CacheCounters()
        self._lock = Lock()

    def _count(self, name: str) -> None:
        with self._lock:
            setattr(self._counters, name, getattr(self._counters, name) + 1)

    def snapshot(self) -> Dict[str, int]:
        """Return a copy of the hit/miss/error counters."""
        with self._lock:
            return asdict(self._counters)

    def read_through(self, key: str, loader: Callable[[], Optional[T]], ttl: int) -> CacheRead[Optional[T]]:
        """Return the cached value for key, or load it, cache it and return it.

        A None result from the loader (nothing found) is not cached.
        """
        if not self.backend.enabled:
            return CacheRead(loader(), cached=False)

        if self.backend.is_available():
            try:
                value = self.backend.get(key)
            except CacheError as e:
                self._count("errors")
                logger.warning("Cache read failed for %s: %s", key, e)
            else:
                if value is not None:
                    self._count("hits")
                    logger.debug("Cache HIT: %s", key)
                    return CacheRead(value, cached=True)

        self._count("misses")
        logger.debug("Cache MISS: %s", key)
        loaded = loader()
        if loaded is not None and self.backend.is_available():
            try:
                self.backend.set(key, loaded, ttl)
                logger.debug("Cache SET: %s (TTL: %ss)", key, ttl)
            except CacheError as e:
                self._count("errors")
                logger.warning("Cache write failed for %s: %s", key, e)
        return CacheRead(loaded, cached=False)

    def invalidate(self, *keys: str) -> bool:
        """Delete exactly the given keys. Return False if the invalidation was missed."""
        if not self.backend.enabled or not keys:
            return True
        # Attempted even while the backend is backing off.
        try:
            self.backend.delete(*keys)
        except CacheError as e:
            self._count("invalidation_failures")
            logger.warning(
                "Cache invalidation failed for %s: %s (entries expire within their TTL)",
                ", ".join(keys),
                e,
            )
            return False
        logger.debug("Cache INVALIDATE: %s", ", ".join(keys))
        return True

    def invalidate_pattern(self, pattern: str = TASK_KEY_PATTERN) -> int:
        """Scan-based removal of every key matching pattern; 0 on failure."""
        if not self.backend.enabled:
            return 0
        try:
            return self.backend.delete_pattern(pattern)
        except CacheError as e:
            self._count("invalidation_failures")
            logger.warning("Cache invalidation failed for pattern %s: %s", pattern, e)
            return 0

    def status(self) -> str:
        """Health status of the backend: ok, error, or unavailable when disabled."""
        if not self.backend.enabled:
            return "unavailable"
        return "ok" if self.backend.ping() else "error"
