"""
Task use cases: validation, store access, and cache consistency.

Every write follows the same order: validate, commit to the store,
invalidate the cache keys the write made stale, then return. Nothing here
holds a lock across store or cache I/O.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .consistency import ALL_TASKS_KEY, ReadThroughCache, keys_for_write, task_key
from .exceptions import StoreError, TaskNotFoundError, TaskValidationError
from .models import TaskEntity
from .repositories import SAMPLE_TASKS, Repository
from .schemas import TITLE_MAX_LENGTH, TaskCreate, TaskOut, TaskStats, TaskUpdate

logger = logging.getLogger(__name__)


def _to_json(entity: TaskEntity) -> Dict[str, Any]:
    return TaskOut(**entity).model_dump(mode="json")


def _clean_title(value: Any, required_message: str = "Title is required") -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise TaskValidationError(required_message)
    title = value.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise TaskValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
    return title


# PUBLIC_INTERFACE
class TaskService:
    """Composes a Repository and a ReadThroughCache behind the HTTP handlers."""

    def __init__(
        self,
        repository: Repository,
        cache: ReadThroughCache,
        list_ttl: int = 60,
        item_ttl: int = 300,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.list_ttl = list_ttl
        self.item_ttl = item_ttl

    def list_tasks(self) -> Tuple[List[TaskOut], bool]:
        """Return all tasks newest first and whether the cache served them."""
        read = self.cache.read_through(
            ALL_TASKS_KEY,
            lambda: [_to_json(t) for t in self.repository.list()],
            self.list_ttl,
        )
        return [TaskOut.model_validate(t) for t in read.value or []], read.cached

    def get_task(self, task_id: int) -> Tuple[TaskOut, bool]:
        """Return one task and whether the cache served it."""

        def load() -> Optional[Dict[str, Any]]:
            entity = self.repository.get(task_id)
            return None if entity is None else _to_json(entity)

        read = self.cache.read_through(task_key(task_id), load, self.item_ttl)
        if read.value is None:
            raise TaskNotFoundError(task_id)
        return TaskOut.model_validate(read.value), read.cached

    def create_task(self, payload: TaskCreate) -> TaskOut:
        title = _clean_title(payload.title)
        created = self.repository.create(
            TaskCreate(title=title, description=payload.description or "")
        )
        self.cache.invalidate(*keys_for_write(created["id"]))
        logger.info("Task %s created", created["id"])
        return TaskOut(**created)

    def update_task(self, task_id: int, payload: TaskUpdate) -> TaskOut:
        changes = payload.supplied_fields()
        if not changes:
            raise TaskValidationError("No fields to update")
        if "title" in changes:
            changes["title"] = _clean_title(changes["title"], "Title cannot be empty")
        if "description" in changes and changes["description"] is None:
            changes["description"] = ""
        if "completed" in changes and changes["completed"] is None:
            raise TaskValidationError("Completed must be true or false")

        updated = self.repository.update(task_id, changes)
        if updated is None:
            raise TaskNotFoundError(task_id)
        self.cache.invalidate(*keys_for_write(task_id))
        logger.info("Task %s updated (%s)", task_id, ", ".join(sorted(changes)))
        return TaskOut(**updated)

    def delete_task(self, task_id: int) -> int:
        if not self.repository.delete(task_id):
            raise TaskNotFoundError(task_id)
        self.cache.invalidate(*keys_for_write(task_id))
        logger.info("Task %s deleted", task_id)
        return task_id

    def stats(self) -> TaskStats:
        """Aggregate counts, computed by the store on every call."""
        return TaskStats(**self.repository.stats())

    def health(self) -> Dict[str, Any]:
        """
        Probe the store and the cache.

        Raises:
            StoreError: if the store does not answer.
        """
        if not self.repository.ping():
            raise StoreError("Database unavailable")
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc),
            "services": {"api": "ok", "database": "ok", "cache": self.cache.status()},
            "cache_stats": self.cache.snapshot(),
        }

    def reset_cache(self) -> int:
        """Drop task entries left in the cache by a previous process."""
        removed = self.cache.invalidate_pattern()
        if removed:
            logger.info("Dropped %s leftover cache entries", removed)
        return removed

    def seed_sample_tasks(self) -> int:
        """Insert the sample tasks when the store is empty; return how many were added."""
        if self.repository.stats()["total"] > 0:
            return 0
        for title, description in SAMPLE_TASKS:
            self.repository.create(TaskCreate(title=title, description=description))
        self.cache.invalidate(ALL_TASKS_KEY)
        logger.info("Seeded %s sample tasks", len(SAMPLE_TASKS))
        return len(SAMPLE_TASKS)
