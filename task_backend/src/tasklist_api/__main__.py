"""
Run the API server.

Usage:
    python -m tasklist_api

Bind address comes from API_HOST / API_PORT; see settings.py for the rest.
"""
from __future__ import annotations

import uvicorn

from .settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "tasklist_api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    main()
