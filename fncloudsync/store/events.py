"""SQLite repository for task events."""

from __future__ import annotations

import sqlite3

from fncloudsync.domain import TaskEvent
from fncloudsync.store.db import (
    format_optional_timestamp,
    map_sql_error,
    parse_optional_timestamp,
)

DEFAULT_LIMIT = 100

_COLUMNS = "id, task_id, event_type, level, message, details_json, created_at"


class TaskEventRepository:
    """Appends events to a task's log and reads them back."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def create(self, event: TaskEvent) -> None:
        """Store an event; raises ConflictError on a duplicate id or unknown task."""
        try:
            with self._db:
                self._db.execute(
                    f"INSERT INTO task_events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        event.id,
                        event.task_id,
                        event.event_type,
                        event.level,
                        event.message,
                        event.details_json,
                        format_optional_timestamp(event.created_at),
                    ),
                )
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def list_by_task_id(self, task_id: str, limit: int = 0) -> list[TaskEvent]:
        """The newest events of a task; a limit of zero or less means DEFAULT_LIMIT."""
        if limit <= 0:
            limit = DEFAULT_LIMIT
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM task_events WHERE task_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (task_id, limit),
        ).fetchall()
        return [
            TaskEvent(
                id=event_id,
                task_id=event_task_id,
                event_type=event_type,
                level=level,
                message=message,
                details_json=details_json,
                created_at=parse_optional_timestamp(created_at),
            )
            for (
                event_id,
                event_task_id,
                event_type,
                level,
                message,
                details_json,
                created_at,
            ) in rows
        ]