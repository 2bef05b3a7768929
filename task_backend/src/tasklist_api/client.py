"""
HTTP client for the Task Manager API and an in-memory board view on top of it.

TaskClient maps each endpoint to a method and raises TaskApiError for error
envelopes and transport failures. TaskBoard keeps the task list and stats
the way the browser client does: list failures become an error banner,
mutation failures are raised to the caller, and nothing is locked after a
failure so the action can simply be retried.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .schemas import TaskOut, TaskStats

logger = logging.getLogger(__name__)


class TaskApiError(Exception):
    """Error reported by the API (status_code set) or by the transport (status_code None)."""

    def __init__(self, status_code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


# PUBLIC_INTERFACE
class TaskClient:
    """
    Thin wrapper over the HTTP surface.

    Args:
        base_url: Server root, e.g. http://localhost:3000.
        http: Optional preconfigured httpx.Client (e.g. FastAPI's TestClient).
        timeout: Request timeout in seconds when the client builds its own httpx.Client.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        http: Optional[httpx.Client] = None,
        timeout: float = 5.0,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "TaskClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TaskApiError(None, f"Cannot connect to API: {e}") from e
        try:
            body = response.json()
        except ValueError as e:
            raise TaskApiError(response.status_code, f"Unexpected response: {response.text[:200]}") from e
        if response.is_error or body.get("success") is False:
            raise TaskApiError(response.status_code, body.get("error") or body.get("message") or "Request failed")
        return body

    def list_tasks(self) -> List[TaskOut]:
        body = self._request("GET", "/api/tasks")
        return [TaskOut.model_validate(t) for t in body["data"]]

    def get_task(self, task_id: int) -> TaskOut:
        body = self._request("GET", f"/api/tasks/{task_id}")
        return TaskOut.model_validate(body["data"])

    def create_task(self, title: str, description: str = "") -> TaskOut:
        body = self._request("POST", "/api/tasks", json={"title": title, "description": description})
        return TaskOut.model_validate(body["data"])

    def update_task(self, task_id: int, **fields: Any) -> TaskOut:
        body = self._request("PUT", f"/api/tasks/{task_id}", json=fields)
        return TaskOut.model_validate(body["data"])

    def delete_task(self, task_id: int) -> int:
        body = self._request("DELETE", f"/api/tasks/{task_id}")
        return int(body["id"])

    def stats(self) -> TaskStats:
        body = self._request("GET", "/api/stats")
        return TaskStats.model_validate(body["data"])

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")


# PUBLIC_INTERFACE
class TaskBoard:
    """In-memory view of the task list; holds no state beyond what it renders."""

    def __init__(self, client: TaskClient) -> None:
        self.client = client
        self.tasks: List[TaskOut] = []
        self.stats = TaskStats(total=0, completed=0, pending=0)
        self.error: Optional[str] = None

    def refresh(self) -> None:
        """Reload tasks and stats. A failed task fetch sets the error banner."""
        try:
            self.tasks = self.client.list_tasks()
            self.error = None
        except TaskApiError as e:
            self.error = e.message
            logger.warning("Task list fetch failed: %s", e.message)
        self.refresh_stats()

    def refresh_stats(self) -> None:
        try:
            self.stats = self.client.stats()
        except TaskApiError as e:
            logger.warning("Stats fetch failed: %s", e.message)

    def add(self, title: str, description: str = "") -> TaskOut:
        if not title.strip():
            raise ValueError("Title is required")
        task = self.client.create_task(title, description)
        self.tasks.insert(0, task)
        self.refresh_stats()
        return task

    def edit(self, task_id: int, **fields: Any) -> TaskOut:
        task = self.client.update_task(task_id, **fields)
        self.tasks = [task if t.id == task_id else t for t in self.tasks]
        self.refresh_stats()
        return task

    def toggle(self, task_id: int) -> TaskOut:
        current = next((t for t in self.tasks if t.id == task_id), None)
        if current is None:
            current = self.client.get_task(task_id)
        return self.edit(task_id, completed=not current.completed)

    def remove(self, task_id: int) -> None:
        self.client.delete_task(task_id)
        self.tasks = [t for t in self.tasks if t.id != task_id]
        self.refresh_stats()

    def render(self) -> str:
        """Plain-text rendering: stats line, optional banner, one line per task."""
        lines = [
            f"Total: {self.stats.total}  Completed: {self.stats.completed}  Pending: {self.stats.pending}"
        ]
        if self.error:
            lines.append(f"! {self.error}")
        if not self.tasks:
            lines.append("No tasks yet.")
        for task in self.tasks:
            mark = "x" if task.completed else " "
            line = f"[{mark}] #{task.id} {task.title}"
            if task.description:
                line += f" - {task.description}"
            lines.append(line)
        return "\n".join(lines)
