"""
Utility script to generate and write the OpenAPI schema for the FastAPI app.

The schema is serialized to <task_backend>/interfaces/openapi.json by default
so that API clients and documentation tools can consume a stable contract
without running the server.

Usage:
    python -m tasklist_api.generate_openapi [output_path]
"""
from __future__ import annotations

import json
import os
import sys
from typing import Any, Dict, List, Optional

from .cache import NullCache
from .main import create_app, openapi_tags
from .repositories import InMemoryRepository


def _ensure_tags(schema: Dict[str, Any]) -> None:
    """
    Ensure the OpenAPI schema contains the tag metadata declared in main,
    without overriding tag definitions already present.
    """
    existing_tags: List[Dict[str, Any]] = schema.get("tags", []) or []
    existing_names = {t.get("name") for t in existing_tags if isinstance(t, dict)}
    for tag in openapi_tags:
        if tag.get("name") not in existing_names:
            existing_tags.append(tag)
    if existing_tags:
        schema["tags"] = existing_tags


def default_output_path() -> str:
    # <task_backend>/src/tasklist_api/generate_openapi.py -> <task_backend>/interfaces
    package_dir = os.path.dirname(os.path.abspath(__file__))
    backend_root = os.path.dirname(os.path.dirname(package_dir))
    return os.path.join(backend_root, "interfaces", "openapi.json")


# PUBLIC_INTERFACE
def write_openapi(out_path: Optional[str] = None) -> str:
    """Generate the OpenAPI schema file and return the written file path."""
    # The schema only depends on the routes, so no real store or cache is needed.
    app = create_app(repository=InMemoryRepository(), cache=NullCache())
    schema = app.openapi()
    _ensure_tags(schema)

    out_path = out_path or default_output_path()
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(schema, f, indent=2, ensure_ascii=False)
    return out_path


def main() -> None:
    path = write_openapi(sys.argv[1] if len(sys.argv) > 1 else None)
    print(f"Wrote OpenAPI schema to: {path}")


if __name__ == "__main__":
    main()
