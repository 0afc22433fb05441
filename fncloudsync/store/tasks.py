"""SQLite repository for sync tasks."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from enum import StrEnum
from typing import Any

from fncloudsync.domain import NotFoundError, Task, TaskDirection, TaskStatus
from fncloudsync.store.db import format_timestamp, map_sql_error, parse_timestamp

_COLUMNS = (
    "id, name, connection_id, local_path, remote_path, direction, poll_interval_sec, "
    "conflict_policy, delete_policy, empty_dir_policy, bandwidth_limit_kbps, max_workers, "
    "encryption_enabled, hash_mode, status, desired_state, last_error, created_at, updated_at"
)


def _enum_or_raw(enum_type: type[StrEnum], value: str) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        return value


def _scan_task(row: Sequence[Any]) -> Task:
    return Task(
        id=row[0],
        name=row[1],
        connection_id=row[2],
        local_path=row[3],
        remote_path=row[4],
        direction=_enum_or_raw(TaskDirection, row[5]),
        poll_interval_sec=row[6],
        conflict_policy=row[7],
        delete_policy=row[8],
        empty_dir_policy=row[9],
        bandwidth_limit_kbps=row[10],
        max_workers=row[11],
        encryption_enabled=bool(row[12]),
        hash_mode=row[13],
        status=_enum_or_raw(TaskStatus, row[14]),
        desired_state=row[15],
        last_error=row[16],
        created_at=parse_timestamp(row[17]),
        updated_at=parse_timestamp(row[18]),
    )


class TaskRepository:
    """Stores and loads tasks."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def _write(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            with self._db:
                return self._db.execute(sql, params)
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def create(self, task: Task) -> None:
        """Insert a task; raises ConflictError on a duplicate id or unknown connection."""
        self._write(
            f"INSERT INTO tasks ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task.id,
                task.name,
                task.connection_id,
                task.local_path,
                task.remote_path,
                str(task.direction),
                task.poll_interval_sec,
                task.conflict_policy,
                task.delete_policy,
                task.empty_dir_policy,
                task.bandwidth_limit_kbps,
                task.max_workers,
                int(task.encryption_enabled),
                task.hash_mode,
                str(task.status),
                task.desired_state,
                task.last_error,
                format_timestamp(task.created_at),
                format_timestamp(task.updated_at),
            ),
        )

    def get_by_id(self, task_id: str) -> Task:
        """Load one task; raises NotFoundError if there is none."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"task {task_id!r} not found")
        return _scan_task(row)

    def list(self) -> list[Task]:
        """All tasks, newest first."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM tasks ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [_scan_task(row) for row in rows]

    def update(self, task: Task) -> None:
        """Overwrite a task's fields except created_at; raises NotFoundError if missing."""
        cursor = self._write(
            """
            UPDATE tasks
            SET name = ?, connection_id = ?, local_path = ?, remote_path = ?, direction = ?,
                poll_interval_sec = ?, conflict_policy = ?, delete_policy = ?, empty_dir_policy = ?,
                bandwidth_limit_kbps = ?, max_workers = ?, encryption_enabled = ?, hash_mode = ?,
                status = ?, desired_state = ?, last_error = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                task.name,
                task.connection_id,
                task.local_path,
                task.remote_path,
                str(task.direction),
                task.poll_interval_sec,
                task.conflict_policy,
                task.delete_policy,
                task.empty_dir_policy,
                task.bandwidth_limit_kbps,
                task.max_workers,
                int(task.encryption_enabled),
                task.hash_mode,
                str(task.status),
                task.desired_state,
                task.last_error,
                format_timestamp(task.updated_at),
                task.id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"task {task.id!r} not found")

    def delete(self, task_id: str) -> None:
        """Remove a task; raises NotFoundError if missing."""
        cursor = self._write("DELETE FROM tasks WHERE id = ?", (task_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"task {task_id!r} not found")

    def has_tasks_by_connection_id(self, connection_id: str) -> bool:
        """Whether any task uses the given connection."""
        (count,) = self._db.execute(
            "SELECT COUNT(1) FROM tasks WHERE connection_id = ?", (connection_id,)
        ).fetchone()
        return count > 0