from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generator, List, Mapping, Optional

from .exceptions import StoreError
from .models import TaskCounts, TaskEntity
from .repositories import UPDATABLE_FIELDS, Repository
from .schemas import TaskCreate
from .utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    title: str = "title"
    description: str = "description"
    completed: str = "completed"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()

_SELECT_COLS = ", ".join(
    (_COLS.id, _COLS.title, _COLS.description, _COLS.completed, _COLS.created_at, _COLS.updated_at)
)

# INTEGER PRIMARY KEY range; larger ids cannot be bound and match no row.
_ID_MIN = -(2**63)
_ID_MAX = 2**63 - 1


def _format_dt(value: datetime) -> str:
    # Fixed-width ISO text so that string ordering matches time ordering.
    return value.isoformat(timespec="microseconds")


def _single_row(cursor: sqlite3.Cursor) -> Optional[sqlite3.Row]:
    # Drain the cursor so a RETURNING statement is finished before commit.
    rows = cursor.fetchall()
    return rows[0] if rows else None


def _storable_id(task_id: int) -> bool:
    return _ID_MIN <= task_id <= _ID_MAX


class SQLiteRepository(Repository):
    """
    SQLite repository implementing the Repository interface.

    One connection per operation; every write is a single statement with a
    RETURNING clause, so SQLite's own transaction makes it atomic. Requires
    SQLite 3.35 or newer.
    """

    def __init__(
        self,
        db_path: str,
        timeout: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._clock = clock
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        except sqlite3.Error as e:
            logger.error("Cannot open sqlite database %s: %s", self._db_path, e)
            raise StoreError(str(e)) from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("SQLite statement failed: %s", e)
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.title} TEXT NOT NULL CHECK (length(trim({_COLS.title})) > 0),
                    {_COLS.description} TEXT NOT NULL DEFAULT '',
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_completed ON {_COLS.table}({_COLS.completed})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at} DESC)"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": int(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description] or "",
            "completed": bool(row[_COLS.completed]),
            "created_at": datetime.fromisoformat(row[_COLS.created_at]),
            "updated_at": datetime.fromisoformat(row[_COLS.updated_at]),
        }

    def create(self, data: TaskCreate) -> TaskEntity:
        with self._conn() as conn:
            # Write lock is held while the clock is read: id order matches created_at order.
            conn.execute("BEGIN IMMEDIATE")
            now = _format_dt(self._clock())
            row = _single_row(
                conn.execute(
                    f"""
                    INSERT INTO {_COLS.table} ({_COLS.title}, {_COLS.description}, {_COLS.completed},
                        {_COLS.created_at}, {_COLS.updated_at})
                    VALUES (?, ?, 0, ?, ?)
                    RETURNING {_SELECT_COLS}
                    """,
                    (data.title, data.description or "", now, now),
                )
            )
            assert row is not None
            return self._row_to_entity(row)

    def get(self, task_id: int) -> Optional[TaskEntity]:
        if not _storable_id(task_id):
            return None
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_SELECT_COLS} FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,)
            ).fetchone()
            return self._row_to_entity(row) if row else None

    def update(self, task_id: int, changes: Mapping[str, Any]) -> Optional[TaskEntity]:
        if not _storable_id(task_id):
            return None
        assignments = []
        params: List[Any] = []
        for name in UPDATABLE_FIELDS:
            if name in changes:
                value = changes[name]
                assignments.append(f"{name} = ?")
                params.append((1 if value else 0) if name == _COLS.completed else value)
        assignments.append(f"{_COLS.updated_at} = ?")
        params.append(_format_dt(self._clock()))
        params.append(task_id)

        with self._conn() as conn:
            row = _single_row(
                conn.execute(
                    f"""
                    UPDATE {_COLS.table}
                    SET {', '.join(assignments)}
                    WHERE {_COLS.id} = ?
                    RETURNING {_SELECT_COLS}
                    """,
                    params,
                )
            )
            return self._row_to_entity(row) if row else None

    def delete(self, task_id: int) -> bool:
        if not _storable_id(task_id):
            return False
        with self._conn() as conn:
            row = _single_row(
                conn.execute(
                    f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ? RETURNING {_COLS.id}",
                    (task_id,),
                )
            )
            return row is not None

    def list(self) -> List[TaskEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {_SELECT_COLS} FROM {_COLS.table}
                ORDER BY {_COLS.created_at} DESC, {_COLS.id} DESC
                """
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def stats(self) -> TaskCounts:
        with self._conn() as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN {_COLS.completed} = 1 THEN 1 ELSE 0 END), 0) AS completed
                FROM {_COLS.table}
                """
            ).fetchone()
        total = int(row["total"])
        completed = int(row["completed"])
        return {"total": total, "completed": completed, "pending": total - completed}

    def ping(self) -> bool:
        try:
            with self._conn() as conn:
                conn.execute("SELECT 1").fetchone()
        except StoreError:
            return False
        return True
