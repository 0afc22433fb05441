"""SQLite repository for the queue of pending sync operations."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from fncloudsync.domain import NotFoundError, OperationQueueItem
from fncloudsync.store.db import (
    format_optional_timestamp,
    format_timestamp,
    map_sql_error,
    parse_optional_timestamp,
)

DEFAULT_DUE_LIMIT = 64

_COLUMNS = (
    "id, task_id, op_type, target_path, src_side, reason, payload_json, priority, status, "
    "attempt_count, next_attempt_at, last_error, created_at, updated_at"
)


def _queue_status_or_default(status: str) -> str:
    if status in ("", "pending"):
        return "queued"
    return status


def _now_text() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def _scan_item(row: Sequence[Any]) -> OperationQueueItem:
    (
        item_id,
        task_id,
        op_type,
        target_path,
        src_side,
        reason,
        payload_json,
        priority,
        status,
        attempt_count,
        next_attempt_at,
        last_error,
        created_at,
        updated_at,
    ) = row
    return OperationQueueItem(
        id=item_id,
        task_id=task_id,
        op_type=op_type,
        target_path=target_path,
        src_side=src_side,
        reason=reason,
        payload_json=payload_json,
        priority=priority,
        status=status,
        attempt_count=attempt_count,
        next_attempt_at=parse_optional_timestamp(next_attempt_at),
        last_error=last_error,
        created_at=parse_optional_timestamp(created_at),
        updated_at=parse_optional_timestamp(updated_at),
    )


class OperationQueueRepository:
    """Queues operations per task and tracks their attempts."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def _write(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            with self._db:
                return self._db.execute(sql, params)
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def _write_one(self, sql: str, params: Sequence[Any], item_id: str) -> None:
        cursor = self._write(sql, params)
        if cursor.rowcount == 0:
            raise NotFoundError(f"queue item {item_id!r} not found")

    def enqueue(self, item: OperationQueueItem) -> None:
        """Add an item; an empty or pending status is stored as queued."""
        self._write(
            f"INSERT INTO operation_queue ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                item.id,
                item.task_id,
                item.op_type,
                item.target_path,
                item.src_side,
                item.reason,
                item.payload_json,
                item.priority,
                _queue_status_or_default(item.status),
                item.attempt_count,
                format_optional_timestamp(item.next_attempt_at),
                item.last_error,
                format_timestamp(item.created_at),
                format_timestamp(item.updated_at),
            ),
        )

    def list_by_task_id(self, task_id: str) -> list[OperationQueueItem]:
        """All items of a task, oldest first."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM operation_queue WHERE task_id = ? "
            "ORDER BY created_at ASC, id ASC",
            (task_id,),
        ).fetchall()
        return [_scan_item(row) for row in rows]

    def dequeue(self, item_id: str) -> None:
        """Mark an item as succeeded; raises NotFoundError if missing."""
        self._write_one(
            "UPDATE operation_queue SET status = 'succeeded', updated_at = ? WHERE id = ?",
            (_now_text(), item_id),
            item_id,
        )

    def get_by_id(self, item_id: str) -> OperationQueueItem:
        """Load one item; raises NotFoundError if there is none."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM operation_queue WHERE id = ?", (item_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"queue item {item_id!r} not found")
        return _scan_item(row)

    def list_due(self, now: datetime, limit: int = 0) -> list[OperationQueueItem]:
        """Waiting items whose next attempt is due, highest priority first.

        A limit of zero or less means DEFAULT_DUE_LIMIT.
        """
        if limit <= 0:
            limit = DEFAULT_DUE_LIMIT
        rows = self._db.execute(
            f"""
            SELECT {_COLUMNS}
            FROM operation_queue
            WHERE status IN ('pending', 'queued', 'retry_wait')
              AND (next_attempt_at = '' OR next_attempt_at <= ?)
            ORDER BY priority DESC, created_at ASC, id ASC
            LIMIT ?
            """,
            (format_timestamp(now), limit),
        ).fetchall()
        return [_scan_item(row) for row in rows]

    def reschedule(self, item: OperationQueueItem) -> None:
        """Store an item's status, attempt count, next attempt and last error."""
        self._write_one(
            """
            UPDATE operation_queue
            SET status = ?, attempt_count = ?, next_attempt_at = ?, last_error = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                _queue_status_or_default(item.status),
                item.attempt_count,
                format_optional_timestamp(item.next_attempt_at),
                item.last_error,
                format_timestamp(item.updated_at),
                item.id,
            ),
            item.id,
        )

    def reset_retryable_by_task_id(self, task_id: str) -> int:
        """Requeue a task's waiting and executing items at once; returns how many."""
        cursor = self._write(
            """
            UPDATE operation_queue
            SET status = 'queued', next_attempt_at = '', updated_at = ?
            WHERE task_id = ? AND status IN ('retry_wait', 'executing')
            """,
            (_now_text(), task_id),
        )
        return cursor.rowcount

    def mark_failed(self, item_id: str, last_error: str) -> None:
        """Mark an item as failed for good; raises NotFoundError if missing."""
        self._write_one(
            "UPDATE operation_queue SET status = 'failed', last_error = ?, updated_at = ? "
            "WHERE id = ?",
            (last_error, _now_text(), item_id),
            item_id,
        )