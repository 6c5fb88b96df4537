from __future__ import annotations

import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from taskboard.api.models import connect
from taskboard.utils.crypto import random_id


class TaskStatus(str, Enum):
    open = "OPEN"
    done = "DONE"


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    description: str | None
    status: TaskStatus
    created_at: str
    updated_at: str
    user_id: str

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "userId": self.user_id,
        }


@dataclass(frozen=True, slots=True)
class TaskPage:
    tasks: list[Task]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit > 0 else 0


class TaskStore:
    """
    SQLite-backed task store. Every read and write is scoped to an owner.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init()

    def _conn(self) -> sqlite3.Connection:
        return connect(self.db_path)

    def _init(self) -> None:
        con = self._conn()
        try:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                  id TEXT PRIMARY KEY,
                  title TEXT NOT NULL,
                  description TEXT,
                  status TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  user_id TEXT NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS tasks_user_id ON tasks(user_id);")
            con.commit()
        finally:
            con.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"]),
            description=row["description"],
            status=TaskStatus(str(row["status"])),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
            user_id=str(row["user_id"]),
        )

    def create(self, *, user_id: str, title: str, description: str | None = None) -> Task:
        ts = _now_iso()
        task = Task(
            id=random_id("t_", 12),
            title=title,
            description=description,
            status=TaskStatus.open,
            created_at=ts,
            updated_at=ts,
            user_id=str(user_id),
        )
        con = self._conn()
        try:
            con.execute(
                """
                INSERT INTO tasks (id, title, description, status, created_at, updated_at, user_id)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    task.id,
                    task.title,
                    task.description,
                    task.status.value,
                    task.created_at,
                    task.updated_at,
                    task.user_id,
                ),
            )
            con.commit()
        finally:
            con.close()
        return task

    def get(self, *, user_id: str, task_id: str) -> Task | None:
        con = self._conn()
        try:
            row = con.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?;", (str(task_id), str(user_id))
            ).fetchone()
        finally:
            con.close()
        return self._row_to_task(row) if row is not None else None

    def list_tasks(
        self,
        *,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: TaskStatus | None = None,
        search: str | None = None,
    ) -> TaskPage:
        where = ["user_id = ?"]
        args: list[Any] = [str(user_id)]
        if status is not None:
            where.append("status = ?")
            args.append(status.value)
        if search:
            where.append("instr(lower(title), lower(?)) > 0")
            args.append(str(search))
        clause = " AND ".join(where)
        offset = (int(page) - 1) * int(limit)
        con = self._conn()
        try:
            total = int(con.execute(f"SELECT COUNT(*) FROM tasks WHERE {clause};", args).fetchone()[0])
            rows = con.execute(
                f"SELECT * FROM tasks WHERE {clause} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?;",
                [*args, int(limit), offset],
            ).fetchall()
        finally:
            con.close()
        return TaskPage(
            tasks=[self._row_to_task(r) for r in rows], total=total, page=int(page), limit=int(limit)
        )

    def update(self, task: Task, **changes: Any) -> Task:
        """Persist `changes` (title/description/status) on an already-owned task."""
        if not changes:
            return task
        updated = replace(task, updated_at=_now_iso(), **changes)
        con = self._conn()
        try:
            con.execute(
                """
                UPDATE tasks SET title = ?, description = ?, status = ?, updated_at = ?
                WHERE id = ? AND user_id = ?;
                """,
                (
                    updated.title,
                    updated.description,
                    updated.status.value,
                    updated.updated_at,
                    updated.id,
                    updated.user_id,
                ),
            )
            con.commit()
        finally:
            con.close()
        return updated

    def toggle(self, task: Task) -> Task:
        new_status = TaskStatus.done if task.status == TaskStatus.open else TaskStatus.open
        return self.update(task, status=new_status)

    def delete(self, task: Task) -> None:
        con = self._conn()
        try:
            con.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?;", (task.id, task.user_id))
            con.commit()
        finally:
            con.close()
