"""Pytest fixtures: apps built with injected stores and caches."""

from datetime import datetime
from typing import Any, Iterator, List, Optional

import pytest
import redis
from fastapi.testclient import TestClient

from tasklist_api.cache import Cache, InMemoryCache
from tasklist_api.exceptions import CacheError, StoreError
from tasklist_api.main import create_app
from tasklist_api.repositories import InMemoryRepository
from tasklist_api.settings import Settings


def parse_ts(value: str) -> datetime:
    """Parse an API timestamp ('Z' suffix included)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FlakyCache(InMemoryCache):
    """In-memory cache whose every operation fails while `broken` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.broken = False
        self.deleted: List[str] = []

    def _check(self) -> None:
        if self.broken:
            raise CacheError("connection refused")

    def get(self, key: str) -> Optional[Any]:
        self._check()
        return super().get(key)

    def set(self, key: str, value: Any, ttl: int) -> bool:
        self._check()
        return super().set(key, value, ttl)

    def delete(self, *keys: str) -> int:
        self._check()
        self.deleted.extend(keys)
        return super().delete(*keys)

    def delete_pattern(self, pattern: str) -> int:
        self._check()
        return super().delete_pattern(pattern)

    def ping(self) -> bool:
        return not self.broken


class BrokenRepository(InMemoryRepository):
    """In-memory store that fails like an unreachable database while `broken` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.broken = False

    def _check(self) -> None:
        if self.broken:
            raise StoreError("connection to database refused")

    def create(self, data):
        self._check()
        return super().create(data)

    def get(self, task_id):
        self._check()
        return super().get(task_id)

    def update(self, task_id, changes):
        self._check()
        return super().update(task_id, changes)

    def delete(self, task_id):
        self._check()
        return super().delete(task_id)

    def list(self):
        self._check()
        return super().list()

    def stats(self):
        self._check()
        return super().stats()

    def ping(self) -> bool:
        return not self.broken


class FakePipeline:
    def __init__(self, fake: "FakeRedis") -> None:
        self.fake = fake
        self.pending: List[List[str]] = []

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def unlink(self, *keys: str) -> None:
        self.pending.append(list(keys))

    def execute(self) -> List[int]:
        results = [self.fake.delete(*keys) for keys in self.pending]
        self.pending = []
        return results


class FakeRedis:
    """Minimal stand-in for redis.Redis (decode_responses=True) used by RedisCache tests."""

    def __init__(self) -> None:
        self.store: dict = {}
        self.ttls: dict = {}
        self.down = False
        self.calls = 0
        self.closed = False

    def _check(self) -> None:
        self.calls += 1
        if self.down:
            raise redis.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    def get(self, key: str) -> Optional[str]:
        self._check()
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys: str) -> int:
        self._check()
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    def scan_iter(self, match: str) -> Iterator[str]:
        import fnmatch

        self._check()
        return iter([k for k in list(self.store) if fnmatch.fnmatchcase(k, match)])

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def ping(self) -> bool:
        self._check()
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def make_client(settings: Settings):
    """Factory building a started TestClient around the given store and cache."""
    clients: List[TestClient] = []

    def _make(repository: InMemoryRepository, cache: Cache, **kwargs: Any) -> TestClient:
        app = create_app(settings=settings, repository=repository, cache=cache)
        client = TestClient(app, **kwargs)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, repository: InMemoryRepository, cache: InMemoryCache) -> TestClient:
    return make_client(repository, cache)
