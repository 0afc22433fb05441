"""SQLite repository for the runtime state of each task."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from fncloudsync.domain import NotFoundError, TaskRuntimeState
from fncloudsync.store.db import (
    ZERO_TIME,
    format_optional_timestamp,
    format_timestamp,
    map_sql_error,
    parse_optional_timestamp,
)

_COLUMNS = (
    "task_id, phase, last_local_scan_at, last_remote_scan_at, last_reconcile_at, "
    "last_success_at, backoff_until, retry_streak, last_error, checkpoint_json, updated_at"
)

_UPSERT = f"""
    INSERT INTO task_runtime_state ({_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(task_id) DO UPDATE SET
        phase = excluded.phase,
        last_local_scan_at = excluded.last_local_scan_at,
        last_remote_scan_at = excluded.last_remote_scan_at,
        last_reconcile_at = excluded.last_reconcile_at,
        last_success_at = excluded.last_success_at,
        backoff_until = excluded.backoff_until,
        retry_streak = excluded.retry_streak,
        last_error = excluded.last_error,
        checkpoint_json = excluded.checkpoint_json,
        updated_at = excluded.updated_at
"""


def _missing(value: datetime | None) -> bool:
    if value is None:
        return True
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware == ZERO_TIME


class TaskRuntimeRepository:
    """Keeps one runtime state row per task."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_by_task_id(self, task_id: str) -> TaskRuntimeState:
        """Load a task's runtime state; raises NotFoundError if there is none."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM task_runtime_state WHERE task_id = ?", (task_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"runtime state for task {task_id!r} not found")
        (
            state_task_id,
            phase,
            last_local_scan_at,
            last_remote_scan_at,
            last_reconcile_at,
            last_success_at,
            backoff_until,
            retry_streak,
            last_error,
            checkpoint_json,
            updated_at,
        ) = row
        return TaskRuntimeState(
            task_id=state_task_id,
            phase=phase,
            last_local_scan_at=parse_optional_timestamp(last_local_scan_at),
            last_remote_scan_at=parse_optional_timestamp(last_remote_scan_at),
            last_reconcile_at=parse_optional_timestamp(last_reconcile_at),
            last_success_at=parse_optional_timestamp(last_success_at),
            backoff_until=parse_optional_timestamp(backoff_until),
            retry_streak=retry_streak,
            last_error=last_error,
            checkpoint_json=checkpoint_json,
            updated_at=parse_optional_timestamp(updated_at),
        )

    def upsert(self, state: TaskRuntimeState) -> None:
        """Insert or replace a task's runtime state; a missing updated_at becomes now."""
        updated_at = state.updated_at
        if _missing(updated_at):
            updated_at = datetime.now(timezone.utc)
        params = (
            state.task_id,
            state.phase,
            format_optional_timestamp(state.last_local_scan_at),
            format_optional_timestamp(state.last_remote_scan_at),
            format_optional_timestamp(state.last_reconcile_at),
            format_optional_timestamp(state.last_success_at),
            format_optional_timestamp(state.backoff_until),
            state.retry_streak,
            state.last_error,
            state.checkpoint_json,
            format_timestamp(updated_at),
        )
        try:
            with self._db:
                self._db.execute(_UPSERT, params)
        except sqlite3.Error as exc:
            raise map_sql_error(exc)