"""Key/value cache backends with TTL support.

Every backend implements the Cache interface and stores JSON text, so a
cached value is always a detached copy. Backends raise CacheError on I/O
failure; ReadThroughCache in consistency.py is the only place that absorbs
those errors.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from .exceptions import CacheError
from .settings import Settings

logger = logging.getLogger(__name__)


class Cache(ABC):
    """Capability interface shared by all cache backends."""

    name = "cache"
    # False only for the no-op backend used when no cache is configured.
    enabled = True

    def is_available(self) -> bool:
        """Return True if the backend is worth contacting right now."""
        return self.enabled

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the JSON-decoded value for key, or None on a miss."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> bool:
        """Store value under key for ttl seconds."""

    @abstractmethod
    def delete(self, *keys: str) -> int:
        """Remove the given keys; return how many existed."""

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob pattern; return how many were removed."""

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backend answers."""

    def close(self) -> None:
        """Release connections. No-op by default."""


class NullCache(Cache):
    """Backend used when caching is disabled: every read misses."""

    name = "none"
    enabled = False

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        return False

    def delete(self, *keys: str) -> int:
        return 0

    def delete_pattern(self, pattern: str) -> int:
        return 0

    def ping(self) -> bool:
        return False


class InMemoryCache(Cache):
    """
    Process-local cache with lazy expiry. Useful for single-worker
    deployments and tests.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, Tuple[float, str]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl: int) -> bool:
        payload = json.dumps(value)
        with self._lock:
            self._entries[key] = (self._clock() + ttl, payload)
        return True

    def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._entries[key]
        return len(matched)

    def ping(self) -> bool:
        return True


class RedisCache(Cache):
    """Synchronous Redis cache.

    After a connection failure or timeout the backend reports itself
    unavailable for retry_seconds, so an outage costs one timeout per
    back-off period instead of one per request. Reads and populates honour
    the back-off; deletes are always attempted, and a delete that succeeds
    ends the back-off.
    """

    name = "redis"

    # Keys unlinked per pipeline round-trip by delete_pattern.
    chunk_size = 500

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        *,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        timeout: float = 2.0,
        retry_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if client is None:
            client = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
                socket_connect_timeout=timeout,
                socket_timeout=timeout,
                socket_keepalive=True,
            )
        self.redis = client
        self._retry_seconds = retry_seconds
        self._clock = clock
        self._retry_at = 0.0

    def is_available(self) -> bool:
        return self._clock() >= self._retry_at

    def _call(self, operation: str, fn: Callable[[redis.Redis], Any], force: bool = False) -> Any:
        backing_off = not self.is_available()
        if backing_off and not force:
            raise CacheError(f"redis {operation} skipped: backing off after connection failure")
        try:
            result = fn(self.redis)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            self._retry_at = self._clock() + self._retry_seconds
            logger.warning(
                "Redis %s failed: %s. Cache bypassed for %ss.", operation, e, self._retry_seconds
            )
            raise CacheError(f"redis {operation} failed: {e}") from e
        except redis.RedisError as e:
            raise CacheError(f"redis {operation} failed: {e}") from e
        if backing_off:
            logger.info("Redis answered %s during back-off; cache re-enabled", operation)
            self._retry_at = 0.0
        return result

    def get(self, key: str) -> Optional[Any]:
        value = self._call("get", lambda r: r.get(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            raise CacheError(f"undecodable cache entry {key}: {e}") from e

    def set(self, key: str, value: Any, ttl: int) -> bool:
        serialized = json.dumps(value)
        self._call("set", lambda r: r.setex(key, ttl, serialized))
        return True

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._call("delete", lambda r: r.delete(*keys), force=True) or 0)

    def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching pattern using SCAN + batched UNLINK (non-blocking)."""

        def _scan_and_unlink(r: redis.Redis) -> int:
            deleted = 0
            chunk = []
            for key in r.scan_iter(match=pattern):
                chunk.append(key)
                if len(chunk) >= self.chunk_size:
                    deleted += self._unlink(r, chunk)
                    chunk = []
            if chunk:
                deleted += self._unlink(r, chunk)
            return deleted

        deleted = self._call("delete_pattern", _scan_and_unlink, force=True)
        if deleted:
            logger.info("Cache INVALIDATE: %s (%s keys)", pattern, deleted)
        return deleted

    @staticmethod
    def _unlink(r: redis.Redis, keys: list) -> int:
        with r.pipeline(transaction=False) as pipe:
            pipe.unlink(*keys)
            results = pipe.execute()
        return sum(int(res or 0) for res in results)

    def ping(self) -> bool:
        try:
            self.redis.ping()
        except redis.RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False
        self._retry_at = 0.0
        return True

    def close(self) -> None:
        try:
            self.redis.close()
        except redis.RedisError as e:
            logger.warning("Error closing redis connection: %s", e)
        logger.info("Redis cache disconnected")


# PUBLIC_INTERFACE
def build_cache(settings: Settings) -> Cache:
    """
    Factory to return the configured cache backend.
    - none: NullCache
    - memory: InMemoryCache
    - redis: RedisCache (connects lazily on first use)
    """
    if settings.cache_backend == "redis":
        logger.info("Redis cache configured: %s:%s", settings.redis_host, settings.redis_port)
        return RedisCache(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            timeout=settings.io_timeout_seconds,
            retry_seconds=settings.cache_retry_seconds,
        )
    if settings.cache_backend == "memory":
        return InMemoryCache()
    return NullCache()
