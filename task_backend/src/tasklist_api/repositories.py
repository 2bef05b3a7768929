from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .models import TaskCounts, TaskEntity
from .schemas import TaskCreate
from .settings import Settings, get_settings
from .utils import utc_now

# Columns a partial update may touch.
UPDATABLE_FIELDS = ("title", "description", "completed")

# Inserted into an empty store when SEED_SAMPLE_TASKS is enabled.
SAMPLE_TASKS: Tuple[Tuple[str, str], ...] = (
    ("Containerize the frontend", "Multi-stage Dockerfile for the web client"),
    ("Containerize the backend", "Multi-stage Dockerfile for the API service"),
    ("Write the ops scripts", "build, start, stop, backup-db and restore-db"),
    ("Configure the networks", "Separate frontend and isolated backend networks"),
    ("Configure the volumes", "Persistent volumes for the database and the cache"),
    ("Scan the images", "Check the images for known vulnerabilities"),
    ("Document the project", "README, architecture and security notes"),
    ("Prepare the demo", "Live demo and a short presentation"),
)


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract repository contract for task storage backends."""

    @abstractmethod
    def create(self, data: TaskCreate) -> TaskEntity:
        """Insert a task and return it with its assigned id and timestamps."""

    @abstractmethod
    def get(self, task_id: int) -> Optional[TaskEntity]:
        """Return a TaskEntity by id, or None if not found."""

    @abstractmethod
    def update(self, task_id: int, changes: Mapping[str, Any]) -> Optional[TaskEntity]:
        """
        Apply the given field changes and refresh updated_at in one atomic step.
        Return the updated entity or None if not found.
        """

    @abstractmethod
    def delete(self, task_id: int) -> bool:
        """Delete a TaskEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self) -> List[TaskEntity]:
        """Return all tasks, newest first (created_at desc, then id desc)."""

    @abstractmethod
    def stats(self) -> TaskCounts:
        """Return total/completed/pending counts."""

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the store answers a trivial query."""

    def close(self) -> None:
        """Release backend resources. No-op by default."""


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._lock = RLock()
        self._items: Dict[int, TaskEntity] = {}
        self._next_id = 1
        self._clock = clock

    def _allocate_id(self) -> int:
        i = self._next_id
        self._next_id += 1
        return i

    def create(self, data: TaskCreate) -> TaskEntity:
        with self._lock:
            now = self._clock()
            entity: TaskEntity = {
                "id": self._allocate_id(),
                "title": data.title or "",
                "description": data.description or "",
                "completed": False,
                "created_at": now,
                "updated_at": now,
            }
            self._items[entity["id"]] = entity
            return entity.copy()  # type: ignore[return-value]

    def get(self, task_id: int) -> Optional[TaskEntity]:
        with self._lock:
            item = self._items.get(task_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def update(self, task_id: int, changes: Mapping[str, Any]) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._items.get(task_id)
            if existing is None:
                return None

            updated = existing.copy()
            for name in UPDATABLE_FIELDS:
                if name in changes:
                    updated[name] = changes[name]  # type: ignore[literal-required]
            updated["updated_at"] = self._clock()

            self._items[task_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    def delete(self, task_id: int) -> bool:
        with self._lock:
            return self._items.pop(task_id, None) is not None

    def list(self) -> List[TaskEntity]:
        with self._lock:
            items = sorted(
                self._items.values(),
                key=lambda t: (t["created_at"], t["id"]),
                reverse=True,
            )
            # Return copies to avoid external mutation
            return [t.copy() for t in items]  # type: ignore[misc]

    def stats(self) -> TaskCounts:
        with self._lock:
            total = len(self._items)
            completed = sum(1 for t in self._items.values() if t["completed"])
        return {"total": total, "completed": completed, "pending": total - completed}

    def ping(self) -> bool:
        return True


# PUBLIC_INTERFACE
def get_repository(settings: Optional[Settings] = None) -> Repository:
    """
    Factory to return the configured repository based on settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository (stdlib sqlite3)
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(settings.sqlite_db_path, timeout=settings.io_timeout_seconds)
    return InMemoryRepository()
