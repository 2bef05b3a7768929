from __future__ import annotations

from datetime import datetime
from typing import TypedDict


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A lightweight domain model representing a task record as held by the
    storage backends.

    Fields:
    - id: Unique integer identifier, assigned by the store
    - title: Short title (1..255 chars, trimmed on input)
    - description: Free text, empty string when not provided
    - completed: Boolean completion flag
    - created_at: UTC creation timestamp (datetime)
    - updated_at: UTC last update timestamp (datetime)
    """

    id: int
    title: str
    description: str
    completed: bool
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class TaskCounts(TypedDict):
    """Aggregate completion counts over all tasks."""

    total: int
    completed: int
    pending: int
