from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .cache import Cache, build_cache
from .consistency import ReadThroughCache
from .exceptions import TaskManagerError
from .logging_setup import setup_logging
from .repositories import Repository, get_repository
from .routers import system as system_router
from .routers import tasks as tasks_router
from .service import TaskService
from .settings import Settings, get_settings
from .utils import error_envelope

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "tasks", "description": "CRUD operations for tasks, with read-through caching."},
    {"name": "stats", "description": "Aggregate task statistics."},
]


def _format_validation_errors(errors: List[Dict[str, Any]]) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid request: " + "; ".join(parts)


async def _task_error_handler(request: Request, exc: TaskManagerError) -> JSONResponse:
    """Map domain errors to their status code and the error envelope."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message))


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and path parameters are validation errors (400)."""
    return JSONResponse(status_code=400, content=error_envelope(_format_validation_errors(exc.errors())))


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_envelope(str(exc) or "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    """Register every handler that turns an exception into the error envelope."""
    app.add_exception_handler(TaskManagerError, _task_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)


# PUBLIC_INTERFACE
def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    cache: Optional[Cache] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Store and cache are constructed here (or injected, e.g. fakes in tests)
    and shared by all request handlers through app.state.task_service.
    Startup drops leftover task cache entries and optionally seeds sample
    tasks; shutdown closes the cache and the store.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    if repository is None:
        repository = get_repository(settings)
    if cache is None:
        cache = build_cache(settings)
    service = TaskService(
        repository,
        ReadThroughCache(cache),
        list_ttl=settings.cache_list_ttl,
        item_ttl=settings.cache_item_ttl,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.reset_cache()
        if settings.seed_sample_tasks:
            service.seed_sample_tasks()
        logger.info(
            "Task API started (store=%s, cache=%s)",
            type(repository).__name__,
            cache.name,
        )
        yield
        cache.close()
        repository.close()
        logger.info("Task API stopped")

    app = FastAPI(
        title="Task Manager API",
        description="Task list backend with a relational store and a read-through cache.",
        version=__version__,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.task_service = service

    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(system_router.router)
    app.include_router(tasks_router.router)
    return app
