from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

TITLE_MAX_LENGTH = 255


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.

    The title is declared optional so that a missing or blank title is
    reported by the service as a 400 "Title is required" instead of a schema
    error.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the task (required)")
    description: Optional[str] = Field(default=None, description="Optional detailed description")


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing task.
    All fields are optional; only provided fields will be updated.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "completed": True,
            }
        }
    )

    title: Optional[str] = Field(default=None, description="New title; must not be blank")
    description: Optional[str] = Field(default=None, description="New description; null clears it")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")

    def supplied_fields(self) -> Dict[str, Any]:
        """Return only the fields present in the request body."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 123,
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "completed": False,
                "created_at": "2026-01-25T10:15:30.123456Z",
                "updated_at": "2026-01-26T09:00:00.000001Z",
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the task")
    title: str = Field(..., description="Short title for the task")
    description: str = Field(default="", description="Detailed description")
    completed: bool = Field(..., description="Completion status flag")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


# PUBLIC_INTERFACE
class TaskStats(BaseModel):
    """Completion counts; total always equals completed + pending."""

    total: int = Field(..., description="Number of tasks")
    completed: int = Field(..., description="Number of completed tasks")
    pending: int = Field(..., description="Number of tasks not yet completed")


class TaskEnvelope(BaseModel):
    """Envelope for a single task returned by a write."""

    success: bool = True
    data: TaskOut


class TaskReadEnvelope(TaskEnvelope):
    """Envelope for a single task read, flagging whether it came from the cache."""

    cached: bool = Field(..., description="True when served from the cache")


class TaskListEnvelope(BaseModel):
    """Envelope for the task list, newest first."""

    success: bool = True
    data: List[TaskOut]
    cached: bool = Field(..., description="True when served from the cache")


class DeleteEnvelope(BaseModel):
    """Confirmation of a deleted task."""

    success: bool = True
    message: str
    id: int


class StatsEnvelope(BaseModel):
    """Envelope for aggregate statistics."""

    success: bool = True
    data: TaskStats


class ErrorEnvelope(BaseModel):
    """Shape of every error response."""

    success: bool = False
    error: str


class HealthServices(BaseModel):
    api: str
    database: str
    cache: str


class HealthOut(BaseModel):
    """Health report for the API and its collaborators."""

    status: str
    timestamp: datetime
    services: HealthServices
    cache_stats: Dict[str, int] = Field(default_factory=dict)
