import pytest

from conftest import BrokenRepository, FlakyCache
from tasklist_api.cache import InMemoryCache, NullCache
from tasklist_api.consistency import (
    ALL_TASKS_KEY,
    ReadThroughCache,
    keys_for_write,
    task_key,
)
from tasklist_api.exceptions import StoreError


class CountingLoader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.value


class TestReadThrough:
    def test_miss_then_hit(self):
        layer = ReadThroughCache(InMemoryCache())
        loader = CountingLoader([{"id": 1}])

        first = layer.read_through("k", loader, ttl=60)
        second = layer.read_through("k", loader, ttl=60)

        assert first.cached is False and first.value == [{"id": 1}]
        assert second.cached is True and second.value == [{"id": 1}]
        assert loader.calls == 1
        assert layer.snapshot()["hits"] == 1
        assert layer.snapshot()["misses"] == 1

    def test_empty_list_is_cached(self):
        layer = ReadThroughCache(InMemoryCache())
        loader = CountingLoader([])
        layer.read_through("k", loader, ttl=60)
        assert layer.read_through("k", loader, ttl=60).cached is True
        assert loader.calls == 1

    def test_none_is_not_cached(self):
        layer = ReadThroughCache(InMemoryCache())
        loader = CountingLoader(None)
        layer.read_through("k", loader, ttl=60)
        result = layer.read_through("k", loader, ttl=60)
        assert result.value is None and result.cached is False
        assert loader.calls == 2

    def test_entry_expires_after_ttl(self):
        now = [1000.0]
        layer = ReadThroughCache(InMemoryCache(clock=lambda: now[0]))
        loader = CountingLoader({"id": 7})

        layer.read_through("k", loader, ttl=60)
        now[0] += 59
        assert layer.read_through("k", loader, ttl=60).cached is True
        now[0] += 2
        assert layer.read_through("k", loader, ttl=60).cached is False
        assert loader.calls == 2

    def test_cache_outage_falls_back_to_loader(self):
        backend = FlakyCache()
        backend.broken = True
        layer = ReadThroughCache(backend)
        loader = CountingLoader({"id": 1})

        for _ in range(3):
            result = layer.read_through("k", loader, ttl=60)
            assert result.value == {"id": 1}
            assert result.cached is False
        assert loader.calls == 3
        assert layer.snapshot()["errors"] == 6

    def test_loader_errors_propagate(self):
        layer = ReadThroughCache(InMemoryCache())

        def failing():
            raise StoreError("database is down")

        with pytest.raises(StoreError):
            layer.read_through("k", failing, ttl=60)

    def test_null_cache_always_loads(self):
        layer = ReadThroughCache(NullCache())
        loader = CountingLoader([1, 2])
        layer.read_through("k", loader, ttl=60)
        assert layer.read_through("k", loader, ttl=60).cached is False
        assert loader.calls == 2
        assert layer.snapshot() == {"hits": 0, "misses": 0, "errors": 0, "invalidation_failures": 0}
        assert layer.status() == "unavailable"


class TestInvalidation:
    def test_write_keys(self):
        assert keys_for_write(5) == [ALL_TASKS_KEY, "tasks:5"]
        assert task_key(12) == "tasks:12"

    def test_invalidate_removes_exact_keys(self):
        backend = InMemoryCache()
        layer = ReadThroughCache(backend)
        for key in ("tasks:all", "tasks:1", "tasks:2"):
            backend.set(key, {"k": key}, 60)

        assert layer.invalidate(*keys_for_write(1)) is True
        assert backend.get("tasks:all") is None
        assert backend.get("tasks:1") is None
        assert backend.get("tasks:2") == {"k": "tasks:2"}

    def test_failed_invalidation_is_absorbed_and_counted(self):
        backend = FlakyCache()
        backend.broken = True
        layer = ReadThroughCache(backend)
        assert layer.invalidate("tasks:all") is False
        assert layer.snapshot()["invalidation_failures"] == 1

    def test_invalidate_pattern(self):
        backend = InMemoryCache()
        layer = ReadThroughCache(backend)
        backend.set("tasks:all", [], 60)
        backend.set("tasks:3", {}, 60)
        backend.set("other:1", {}, 60)
        assert layer.invalidate_pattern() == 2
        assert backend.get("other:1") == {}


class TestServiceCacheBehaviour:
    def test_list_is_served_from_cache_until_a_write(self, client):
        client.post("/api/tasks", json={"title": "one"})
        first = client.get("/api/tasks").json()
        second = client.get("/api/tasks").json()
        assert first["cached"] is False
        assert second["cached"] is True
        assert second["data"] == first["data"]

    def test_create_invalidates_cached_list(self, client):
        client.post("/api/tasks", json={"title": "first"})
        client.get("/api/tasks")
        assert client.get("/api/tasks").json()["cached"] is True

        client.post("/api/tasks", json={"title": "second"})
        listed = client.get("/api/tasks").json()
        assert listed["cached"] is False
        assert [t["title"] for t in listed["data"]] == ["second", "first"]

    def test_update_invalidates_item_and_list(self, client):
        task = client.post("/api/tasks", json={"title": "flip"}).json()["data"]
        client.get("/api/tasks")
        client.get(f"/api/tasks/{task['id']}")
        assert client.get(f"/api/tasks/{task['id']}").json()["cached"] is True

        client.put(f"/api/tasks/{task['id']}", json={"completed": True})

        item = client.get(f"/api/tasks/{task['id']}").json()
        assert item["cached"] is False
        assert item["data"]["completed"] is True
        listed = client.get("/api/tasks").json()
        assert listed["data"][0]["completed"] is True

    def test_delete_invalidates_item_and_list(self, client):
        task = client.post("/api/tasks", json={"title": "gone"}).json()["data"]
        client.get("/api/tasks")
        client.get(f"/api/tasks/{task['id']}")

        client.delete(f"/api/tasks/{task['id']}")

        assert client.get(f"/api/tasks/{task['id']}").status_code == 404
        assert client.get("/api/tasks").json()["data"] == []

    def test_writes_leave_other_items_cached(self, client):
        a = client.post("/api/tasks", json={"title": "a"}).json()["data"]
        b = client.post("/api/tasks", json={"title": "b"}).json()["data"]
        client.get(f"/api/tasks/{a['id']}")
        client.put(f"/api/tasks/{b['id']}", json={"title": "b2"})
        assert client.get(f"/api/tasks/{a['id']}").json()["cached"] is True

    def test_cached_item_round_trips_timestamps(self, client):
        task = client.post("/api/tasks", json={"title": "stamp"}).json()["data"]
        fresh = client.get(f"/api/tasks/{task['id']}").json()["data"]
        cached = client.get(f"/api/tasks/{task['id']}").json()["data"]
        assert cached == fresh == task

    def test_broken_cache_never_fails_requests(self, make_client, repository):
        backend = FlakyCache()
        client = make_client(repository, backend)
        backend.broken = True

        created = client.post("/api/tasks", json={"title": "still works"})
        assert created.status_code == 201
        task_id = created.json()["data"]["id"]
        assert client.put(f"/api/tasks/{task_id}", json={"completed": True}).status_code == 200

        listed = client.get("/api/tasks").json()
        assert listed["cached"] is False
        assert listed["data"][0]["completed"] is True
        assert client.delete(f"/api/tasks/{task_id}").status_code == 200

        stats = client.app.state.task_service.cache.snapshot()
        assert stats["invalidation_failures"] == 3

    def test_store_error_surfaces_even_with_warm_cache(self, make_client):
        repository = BrokenRepository()
        client = make_client(repository, InMemoryCache())
        client.post("/api/tasks", json={"title": "x"})
        repository.broken = True

        res = client.post("/api/tasks", json={"title": "y"})
        assert res.status_code == 500
        assert res.json() == {"success": False, "error": "connection to database refused"}

    def test_startup_drops_leftover_entries(self, make_client, repository):
        backend = InMemoryCache()
        backend.set(ALL_TASKS_KEY, [{"stale": True}], 60)
        client = make_client(repository, backend)
        assert backend.get(ALL_TASKS_KEY) is None
        assert client.get("/api/tasks").json()["data"] == []
