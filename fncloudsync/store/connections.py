"""SQLite repository for remote connections."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from typing import Any

from fncloudsync.domain import Connection, NotFoundError
from fncloudsync.store.db import format_timestamp, map_sql_error, parse_timestamp

_COLUMNS = (
    "id, name, endpoint, username, password_ciphertext, root_path, tls_mode, "
    "timeout_sec, capabilities_json, status, created_at, updated_at"
)


def _scan_connection(row: Sequence[Any]) -> Connection:
    (
        connection_id,
        name,
        endpoint,
        username,
        password_ciphertext,
        root_path,
        tls_mode,
        timeout_sec,
        capabilities_json,
        status,
        created_at,
        updated_at,
    ) = row
    return Connection(
        id=connection_id,
        name=name,
        endpoint=endpoint,
        username=username,
        password_ciphertext=password_ciphertext,
        root_path=root_path,
        tls_mode=tls_mode,
        timeout_sec=timeout_sec,
        capabilities_json=capabilities_json,
        status=status,
        created_at=parse_timestamp(created_at),
        updated_at=parse_timestamp(updated_at),
    )


class ConnectionRepository:
    """Stores and loads connections."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def _write(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            with self._db:
                return self._db.execute(sql, params)
        except sqlite3.Error as exc:
            raise map_sql_error(exc)

    def create(self, connection: Connection) -> None:
        """Insert a connection; raises ConflictError on a duplicate id."""
        self._write(
            f"INSERT INTO connections ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                connection.id,
                connection.name,
                connection.endpoint,
                connection.username,
                connection.password_ciphertext,
                connection.root_path,
                str(connection.tls_mode),
                connection.timeout_sec,
                connection.capabilities_json,
                connection.status,
                format_timestamp(connection.created_at),
                format_timestamp(connection.updated_at),
            ),
        )

    def get_by_id(self, connection_id: str) -> Connection:
        """Load one connection; raises NotFoundError if there is none."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM connections WHERE id = ?", (connection_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"connection {connection_id!r} not found")
        return _scan_connection(row)

    def list(self) -> list[Connection]:
        """All connections, newest first."""
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM connections ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [_scan_connection(row) for row in rows]

    def update(self, connection: Connection) -> None:
        """Overwrite a connection's fields except created_at; raises NotFoundError if missing."""
        cursor = self._write(
            """
            UPDATE connections
            SET name = ?, endpoint = ?, username = ?, password_ciphertext = ?, root_path = ?,
                tls_mode = ?, timeout_sec = ?, capabilities_json = ?, status = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                connection.name,
                connection.endpoint,
                connection.username,
                connection.password_ciphertext,
                connection.root_path,
                str(connection.tls_mode),
                connection.timeout_sec,
                connection.capabilities_json,
                connection.status,
                format_timestamp(connection.updated_at),
                connection.id,
            ),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"connection {connection.id!r} not found")

    def delete(self, connection_id: str) -> None:
        """Remove a connection; raises NotFoundError if missing, ConflictError if in use."""
        cursor = self._write("DELETE FROM connections WHERE id = ?", (connection_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"connection {connection_id!r} not found")

    def has_tasks(self, connection_id: str) -> bool:
        """Whether any task uses the given connection."""
        (count,) = self._db.execute(
            "SELECT COUNT(1) FROM tasks WHERE connection_id = ?", (connection_id,)
        ).fetchone()
        return count > 0