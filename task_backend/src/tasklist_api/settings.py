from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CACHE_BACKEND: 'none' (default), 'memory' or 'redis'
    - REDIS_HOST / REDIS_PORT / REDIS_DB / REDIS_PASSWORD: redis connection
    - CACHE_LIST_TTL: seconds a cached task list lives (default 60)
    - CACHE_ITEM_TTL: seconds a cached single task lives (default 300)
    - CACHE_RETRY_SECONDS: seconds to stop contacting redis after a connection failure
    - IO_TIMEOUT_SECONDS: timeout applied to store and cache I/O (default 2)
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - SEED_SAMPLE_TASKS: 'true' to insert sample tasks into an empty store at startup
    - LOG_LEVEL: root log level (default INFO)
    - API_HOST / API_PORT: bind address for `python -m tasklist_api`
    """

    persistence_backend: str = "memory"
    sqlite_db_path: str = "./data/tasks.db"
    cache_backend: str = "none"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    cache_list_ttl: int = 60
    cache_item_ttl: int = 300
    cache_retry_seconds: float = 5.0
    io_timeout_seconds: float = 2.0
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    seed_sample_tasks: bool = False
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 3000


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str, default: int, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    cache_backend = _get_env("CACHE_BACKEND", "none").strip().lower()
    if cache_backend not in {"none", "memory", "redis"}:
        cache_backend = "none"

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        log_level = "INFO"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/tasks.db").strip(),
        cache_backend=cache_backend,
        redis_host=_get_env("REDIS_HOST", "localhost").strip(),
        redis_port=_parse_int(_get_env("REDIS_PORT", "6379"), 6379, minimum=1),
        redis_db=_parse_int(_get_env("REDIS_DB", "0"), 0),
        redis_password=os.getenv("REDIS_PASSWORD") or None,
        cache_list_ttl=_parse_int(_get_env("CACHE_LIST_TTL", "60"), 60, minimum=1),
        cache_item_ttl=_parse_int(_get_env("CACHE_ITEM_TTL", "300"), 300, minimum=1),
        cache_retry_seconds=_parse_float(_get_env("CACHE_RETRY_SECONDS", "5"), 5.0),
        io_timeout_seconds=_parse_float(_get_env("IO_TIMEOUT_SECONDS", "2"), 2.0),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        seed_sample_tasks=_parse_bool(_get_env("SEED_SAMPLE_TASKS", "false"), False),
        log_level=log_level,
        api_host=_get_env("API_HOST", "0.0.0.0").strip(),
        api_port=_parse_int(_get_env("API_PORT", "3000"), 3000, minimum=1),
    )
