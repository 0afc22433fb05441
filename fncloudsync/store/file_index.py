"""SQLite repository for the per-task file index."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from typing import Any

from fncloudsync.domain import FileIndexEntry, NotFoundError
from fncloudsync.store.db import (
    format_optional_timestamp,
    map_sql_error,
    parse_optional_timestamp,
)

_COLUMNS = (
    "id, task_id, relative_path, entry_type, local_exists, remote_exists, local_size, "
    "remote_size, local_mtime, remote_mtime, local_file_id, remote_etag, content_hash, "
    "last_sync_direction, last_sync_at, version, sync_state, conflict_flag, deleted_tombstone"
)

_UPSERT = f"""
    INSERT INTO file_index ({_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(task_id, relative_path) DO UPDATE SET
        entry_type = excluded.entry_type,
        local_exists = excluded.local_exists,
        remote_exists = excluded.remote_exists,
        local_size = excluded.local_size,
        remote_size = excluded.remote_size,
        local_mtime = excluded.local_mtime,
        remote_mtime = excluded.remote_mtime,
        local_file_id = excluded.local_file_id,
        remote_etag = excluded.remote_etag,
        content_hash = excluded.content_hash,
        last_sync_direction = excluded.last_sync_direction,
        last_sync_at = excluded.last_sync_at,
        version = excluded.version,
        sync_state = excluded.sync_state,
        conflict_flag = excluded.conflict_flag,
        deleted_tombstone = excluded.deleted_tombstone
"""


def _scan_entry(row: Sequence[Any]) -> FileIndexEntry:
    (
        entry_id,
        task_id,
        relative_path,
        entry_type,
        local_exists,
        remote_exists,
        local_size,
        remote_size,
        local_mtime,
        remote_mtime,
        local_file_id,
        remote_etag,
        content_hash,
        last_sync_direction,
        last_sync_at,
        version,
        sync_state,
        conflict_flag,
        deleted_tombstone,
    ) = row
    return FileIndexEntry(
        id=entry_id,
        task_id=task_id,
        relative_path=relative_path,
        entry_type=entry_type,
        local_exists=bool(local_exists),
        remote_exists=bool(remote_exists),
        local_size=local_size,
        remote_size=remote_size,
        local_mtime=parse_optional_timestamp(local_mtime),
        remote_mtime=parse_optional_timestamp(remote_mtime),
        local_file_id=local_file_id,
        remote_etag=remote_etag,
        content_hash=content_hash,
        last_sync_direction=last_sync_direction,
        last_sync_at=parse_optional_timestamp(last_sync_at),
        version=version,
        sync_state=sync_state,
        conflict_flag=bool(conflict_flag),
        deleted_tombstone=bool(deleted_tombstone),
    )


class FileIndexRepository:
    """Stores what is known about each path of each task."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def upsert(self, entry: FileIndexEntry) -> None:
        """Insert an entry or replace the one with the same task and path."""
        params = (
            entry.id,
            entry.task_id,
            entry.relative_path,
            entry.entry_type,
            int(entry.local_exists),
            int(entry.remote_exists),
            entry.local_size,
            entry.remote_size,
            format_optional_timestamp(entry.local_mtime),
            format_optional_timestamp(entry.remote_mtime),
            entry.local_file_id,
            entry.remote_etag,
            entry.content_hash,
            entry.last_sync_direction,
            format_optional_timestamp(entry.last_sync_at),
            entry.version,
            entry.sync_state,
            int(entry.conflict_flag),
            int(entry.deleted_tombstone),
        )
        try:
            with self._db:
                self._db.execute(_UPSERT, params)
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def list_by_task_id(self, task_id: str) -> list[FileIndexEntry]:
        """All entries of a task, ordered by relative path."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM file_index WHERE task_id = ? ORDER BY relative_path ASC",
            (task_id,),
        ).fetchall()
        return [_scan_entry(row) for row in rows]

    def get_by_task_id_and_path(self, task_id: str, relative_path: str) -> FileIndexEntry:
        """Load one entry; raises NotFoundError if there is none."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM file_index WHERE task_id = ? AND relative_path = ?",
            (task_id, relative_path),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"file index entry {task_id!r}/{relative_path!r} not found")
        return _scan_entry(row)