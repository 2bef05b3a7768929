from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import StoreError
from ..schemas import ErrorEnvelope, HealthOut, StatsEnvelope
from ..service import TaskService
from ..utils import success_envelope
from .tasks import get_task_service

logger = logging.getLogger(__name__)

router = APIRouter()


# PUBLIC_INTERFACE
@router.get("/", summary="API Index", tags=["health"])
def index() -> Dict[str, Any]:
    """
    List the available endpoints.
    """
    return {
        "message": "Task Manager API",
        "version": __version__,
        "endpoints": {
            "health": "GET /health",
            "tasks": {
                "list": "GET /api/tasks",
                "get": "GET /api/tasks/{id}",
                "create": "POST /api/tasks",
                "update": "PUT /api/tasks/{id}",
                "delete": "DELETE /api/tasks/{id}",
            },
            "stats": "GET /api/stats",
        },
    }


# PUBLIC_INTERFACE
@router.get(
    "/health",
    response_model=HealthOut,
    summary="Health Check",
    tags=["health"],
    responses={500: {"description": "Database unavailable"}},
)
def health_check(service: TaskService = Depends(get_task_service)):
    """
    Health check endpoint.

    A cache outage is reported under services.cache but keeps the service
    healthy; a database outage answers 500.
    """
    try:
        return HealthOut(**service.health())
    except StoreError as e:
        logger.error("Health check failed: %s", e.message)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": e.message,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


# PUBLIC_INTERFACE
@router.get(
    "/api/stats",
    response_model=StatsEnvelope,
    summary="Task Statistics",
    description="Total, completed and pending task counts.",
    tags=["stats"],
    responses={500: {"model": ErrorEnvelope, "description": "Store failure"}},
)
def task_stats(service: TaskService = Depends(get_task_service)) -> StatsEnvelope:
    """
    Aggregate completion counts over all tasks.
    """
    return StatsEnvelope(**success_envelope(service.stats()))
