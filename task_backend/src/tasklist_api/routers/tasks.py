from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from ..schemas import (
    DeleteEnvelope,
    ErrorEnvelope,
    TaskCreate,
    TaskEnvelope,
    TaskListEnvelope,
    TaskReadEnvelope,
    TaskUpdate,
)
from ..service import TaskService
from ..utils import success_envelope

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)

_ERRORS = {
    400: {"model": ErrorEnvelope, "description": "Validation error"},
    404: {"model": ErrorEnvelope, "description": "Task not found"},
    500: {"model": ErrorEnvelope, "description": "Store failure"},
}


def get_task_service(request: Request) -> TaskService:
    """
    Dependency returning the TaskService built by create_app.
    """
    return request.app.state.task_service


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=TaskListEnvelope,
    summary="List Tasks",
    description="List all tasks, newest first. Served from the cache when a fresh copy is held.",
    responses={500: _ERRORS[500]},
)
def list_tasks(service: TaskService = Depends(get_task_service)) -> TaskListEnvelope:
    """
    List every task ordered by created_at descending.
    """
    tasks, cached = service.list_tasks()
    return TaskListEnvelope(**success_envelope(tasks, cached=cached))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskReadEnvelope,
    summary="Get Task",
    description="Get a single task by ID.",
    responses={404: _ERRORS[404], 500: _ERRORS[500]},
)
def get_task(task_id: int, service: TaskService = Depends(get_task_service)) -> TaskReadEnvelope:
    """
    Retrieve a single task by its ID.
    """
    task, cached = service.get_task(task_id)
    return TaskReadEnvelope(**success_envelope(task, cached=cached))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new task. The title is required; the description defaults to an empty string.",
    responses={400: _ERRORS[400], 500: _ERRORS[500]},
)
def create_task(payload: TaskCreate, service: TaskService = Depends(get_task_service)) -> TaskEnvelope:
    """
    Create a new task.
    """
    return TaskEnvelope(**success_envelope(service.create_task(payload)))


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskEnvelope,
    summary="Update Task",
    description=(
        "Update any subset of title, description and completed. "
        "Fields left out of the body keep their current value."
    ),
    responses=_ERRORS,
)
def update_task(
    task_id: int, payload: TaskUpdate, service: TaskService = Depends(get_task_service)
) -> TaskEnvelope:
    """
    Partial update of a task.
    """
    return TaskEnvelope(**success_envelope(service.update_task(task_id, payload)))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    response_model=DeleteEnvelope,
    summary="Delete Task",
    description="Permanently delete a task by ID.",
    responses={404: _ERRORS[404], 500: _ERRORS[500]},
)
def delete_task(task_id: int, service: TaskService = Depends(get_task_service)) -> DeleteEnvelope:
    """
    Delete a task. Returns the deleted id, 404 if not found.
    """
    deleted_id = service.delete_task(task_id)
    return DeleteEnvelope(**success_envelope(message="Task deleted successfully", id=deleted_id))
