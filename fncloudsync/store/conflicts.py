"""SQLite repository for the history of detected conflicts."""

from __future__ import annotations

import sqlite3

from fncloudsync.domain import ConflictRecord
from fncloudsync.store.db import (
    format_optional_timestamp,
    map_sql_error,
    parse_optional_timestamp,
)

_COLUMNS = (
    "id, task_id, relative_path, local_conflict_path, remote_conflict_path, policy, detected_at"
)


class ConflictHistoryRepository:
    """Records conflicts and lists them per task."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def create(self, record: ConflictRecord) -> None:
        """Store a conflict record; raises ConflictError on a duplicate id or unknown task."""
        try:
            with self._db:
                self._db.execute(
                    f"INSERT INTO conflict_history ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.task_id,
                        record.relative_path,
                        record.local_conflict_path,
                        record.remote_conflict_path,
                        record.policy,
                        format_optional_timestamp(record.detected_at),
                    ),
                )
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def list_by_task_id(self, task_id: str) -> list[ConflictRecord]:
        """All conflicts of a task, most recent first."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM conflict_history WHERE task_id = ? "
            "ORDER BY detected_at DESC, id DESC",
            (task_id,),
        ).fetchall()
        return [
            ConflictRecord(
                id=record_id,
                task_id=record_task_id,
                relative_path=relative_path,
                local_conflict_path=local_conflict_path,
                remote_conflict_path=remote_conflict_path,
                policy=policy,
                detected_at=parse_optional_timestamp(detected_at),
            )
            for (
                record_id,
                record_task_id,
                relative_path,
                local_conflict_path,
                remote_conflict_path,
                policy,
                detected_at,
            ) in rows
        ]