"""SQLite repository for records of failed sync operations."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from fncloudsync.domain import FailureRecord, NotFoundError
from fncloudsync.store.db import (
    format_optional_timestamp,
    format_timestamp,
    map_sql_error,
    parse_optional_timestamp,
)

_COLUMNS = (
    "id, task_id, path, op_type, error_code, error_message, retryable, "
    "first_failed_at, last_failed_at, attempt_count, resolved_at"
)


def _scan_record(row: Sequence[Any]) -> FailureRecord:
    (
        record_id,
        task_id,
        path,
        op_type,
        error_code,
        error_message,
        retryable,
        first_failed_at,
        last_failed_at,
        attempt_count,
        resolved_at,
    ) = row
    return FailureRecord(
        id=record_id,
        task_id=task_id,
        path=path,
        op_type=op_type,
        error_code=error_code,
        error_message=error_message,
        retryable=bool(retryable),
        first_failed_at=parse_optional_timestamp(first_failed_at),
        last_failed_at=parse_optional_timestamp(last_failed_at),
        attempt_count=attempt_count,
        resolved_at=parse_optional_timestamp(resolved_at),
    )


class FailureRecordRepository:
    """Stores failures of sync operations and their resolution."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def _write(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            with self._db:
                return self._db.execute(sql, params)
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def create(self, record: FailureRecord) -> None:
        """Store a failure; raises ConflictError on a duplicate id or unknown task."""
        self._write(
            f"INSERT INTO failure_records ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.task_id,
                record.path,
                record.op_type,
                record.error_code,
                record.error_message,
                int(record.retryable),
                format_timestamp(record.first_failed_at),
                format_timestamp(record.last_failed_at),
                record.attempt_count,
                format_optional_timestamp(record.resolved_at),
            ),
        )

    def list_by_task_id(self, task_id: str) -> list[FailureRecord]:
        """All failures of a task, oldest first."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM failure_records WHERE task_id = ? "
            "ORDER BY first_failed_at ASC, id ASC",
            (task_id,),
        ).fetchall()
        return [_scan_record(row) for row in rows]

    def get_by_id(self, record_id: str) -> FailureRecord:
        """Load one failure; raises NotFoundError if there is none."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM failure_records WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"failure record {record_id!r} not found")
        return _scan_record(row)

    def resolve(self, record_id: str, resolved_at: datetime | None) -> None:
        """Mark a failure resolved at the given time; raises NotFoundError if missing."""
        cursor = self._write(
            "UPDATE failure_records SET resolved_at = ? WHERE id = ?",
            (format_optional_timestamp(resolved_at), record_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"failure record {record_id!r} not found")