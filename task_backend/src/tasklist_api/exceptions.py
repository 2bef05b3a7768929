"""
Error taxonomy for the task service.

Every error that may reach an HTTP response derives from TaskManagerError and
carries the status code it maps to. CacheError never reaches a response: the
read-through layer absorbs it.
"""
from __future__ import annotations


class TaskManagerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# PUBLIC_INTERFACE
class TaskValidationError(TaskManagerError):
    """Missing or empty required field, or an update carrying no fields."""

    status_code = 400


# PUBLIC_INTERFACE
class TaskNotFoundError(TaskManagerError):
    """No task matches the requested id."""

    status_code = 404

    def __init__(self, task_id: int) -> None:
        super().__init__("Task not found")
        self.task_id = task_id


# PUBLIC_INTERFACE
class StoreError(TaskManagerError):
    """The backing store is unreachable or rejected a statement."""

    status_code = 500


# PUBLIC_INTERFACE
class CacheError(Exception):
    """A cache backend operation failed (connection, timeout, protocol)."""
