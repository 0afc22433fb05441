"""SQLite connection setup, schema migrations and timestamp encoding."""

from __future__ import annotations

import re
import sqlite3
from datetime import datetime, timedelta, timezone
from os import PathLike

from fncloudsync.domain import ConflictError

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIMESTAMP_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"(Z|[+-]\d{2}:\d{2})"
)

_KEY = "TEXT PRIMARY KEY"
_REQUIRED = "TEXT NOT NULL"


def _text(default: str) -> str:
    return f"{_REQUIRED} DEFAULT '{default}'"


def _integer(default: int) -> str:
    return f"INTEGER NOT NULL DEFAULT {default}"


def _required(*names: str) -> tuple[tuple[str, str], ...]:
    return tuple((name, _REQUIRED) for name in names)


def _empty(*names: str) -> tuple[tuple[str, str], ...]:
    return tuple((name, _text("")) for name in names)


def _owned_by_task() -> str:
    return "FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE"


# Each table: (name, columns as (column, declaration) pairs, table constraints).
_SCHEMA: tuple[tuple[str, tuple[tuple[str, str], ...], tuple[str, ...]], ...] = (
    ("schema_migrations", (("version", "INTEGER PRIMARY KEY"),), ()),
    (
        "connections",
        (
            ("id", _KEY),
            *_required("name", "endpoint", "username"),
            *_empty("password_ciphertext", "root_path"),
            ("tls_mode", _text("strict")),
            ("timeout_sec", _integer(30)),
            *_empty("capabilities_json"),
            ("status", _text("active")),
            *_required("created_at", "updated_at"),
        ),
        (),
    ),
    (
        "tasks",
        (
            ("id", _KEY),
            *_required("name", "connection_id", "local_path", "remote_path", "direction"),
            ("poll_interval_sec", _integer(30)),
            ("conflict_policy", _text("keep_both")),
            ("delete_policy", _text("mirror")),
            ("empty_dir_policy", _text("keep")),
            ("bandwidth_limit_kbps", _integer(0)),
            ("max_workers", _integer(1)),
            ("encryption_enabled", _integer(0)),
            ("hash_mode", _text("basic")),
            ("status", _text("created")),
            *_empty("desired_state", "last_error"),
            *_required("created_at", "updated_at"),
        ),
        ("FOREIGN KEY (connection_id) REFERENCES connections(id) ON DELETE RESTRICT",),
    ),
    (
        "task_runtime_state",
        (
            ("task_id", _KEY),
            *_empty(
                "phase",
                "last_local_scan_at",
                "last_remote_scan_at",
                "last_reconcile_at",
                "last_success_at",
                "backoff_until",
            ),
            ("retry_streak", _integer(0)),
            *_empty("last_error", "checkpoint_json"),
            *_required("updated_at"),
        ),
        (_owned_by_task(),),
    ),
    (
        "operation_queue",
        (
            ("id", _KEY),
            *_required("task_id", "op_type", "target_path"),
            *_empty("src_side", "reason", "payload_json"),
            ("priority", _integer(0)),
            ("status", _text("pending")),
            ("attempt_count", _integer(0)),
            *_empty("next_attempt_at", "last_error"),
            *_required("created_at", "updated_at"),
        ),
        (_owned_by_task(),),
    ),
    (
        "file_index",
        (
            ("id", _KEY),
            *_required("task_id", "relative_path"),
            ("entry_type", _text("file")),
            ("local_exists", _integer(0)),
            ("remote_exists", _integer(0)),
            ("local_size", _integer(0)),
            ("remote_size", _integer(0)),
            *_empty(
                "local_mtime",
                "remote_mtime",
                "local_file_id",
                "remote_etag",
                "content_hash",
                "last_sync_direction",
                "last_sync_at",
            ),
            ("version", _integer(1)),
            *_empty("sync_state"),
            ("conflict_flag", _integer(0)),
            ("deleted_tombstone", _integer(0)),
        ),
        ("UNIQUE(task_id, relative_path)", _owned_by_task()),
    ),
    (
        "failure_records",
        (
            ("id", _KEY),
            *_required("task_id", "path", "op_type"),
            *_empty("error_code", "error_message"),
            ("retryable", _integer(0)),
            *_required("first_failed_at", "last_failed_at"),
            ("attempt_count", _integer(1)),
            *_empty("resolved_at"),
        ),
        (_owned_by_task(),),
    ),
    (
        "conflict_history",
        (
            ("id", _KEY),
            *_required("task_id", "relative_path"),
            *_empty("local_conflict_path", "remote_conflict_path", "policy"),
            *_required("detected_at"),
        ),
        (_owned_by_task(),),
    ),
    (
        "task_events",
        (
            ("id", _KEY),
            *_required("task_id", "event_type"),
            ("level", _text("info")),
            *_empty("message", "details_json"),
            *_required("created_at"),
        ),
        (_owned_by_task(),),
    ),
)


def _create_statement(
    table: str, columns: tuple[tuple[str, str], ...], constraints: tuple[str, ...]
) -> str:
    parts = [f"{name} {declaration}" for name, declaration in columns]
    parts.extend(constraints)
    return f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(parts)})"


MIGRATIONS: tuple[str, ...] = tuple(
    _create_statement(table, columns, constraints) for table, columns, constraints in _SCHEMA
)

_LATE_COLUMNS = (
    ("connections", "capabilities_json", _text("")),
    ("task_runtime_state", "checkpoint_json", _text("")),
)


def open_database(path: str | PathLike[str]) -> sqlite3.Connection:
    """Open a SQLite database in autocommit mode with WAL and foreign keys on."""
    conn = sqlite3.connect(path, timeout=5.0, isolation_level=None, check_same_thread=False)
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("SELECT 1").fetchone()
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def column_exists(conn: sqlite3.Connection, table_name: str, column_name: str) -> bool:
    """Report whether a table has a column of the given name."""
    rows = conn.execute(f"PRAGMA table_info({_quote_identifier(table_name)})").fetchall()
    return any(row[1] == column_name for row in rows)


def migrate(conn: sqlite3.Connection) -> None:
    """Create every table and add columns missing from older schemas, atomically."""
    conn.execute("BEGIN")
    try:
        for statement in MIGRATIONS:
            conn.execute(statement)
        for table, column, definition in _LATE_COLUMNS:
            if not column_exists(conn, table, column):
                conn.execute(
                    f"ALTER TABLE {_quote_identifier(table)} "
                    f"ADD COLUMN {_quote_identifier(column)} {definition}"
                )
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_zero(value: datetime | None) -> bool:
    return value is None or _as_utc(value) == ZERO_TIME


def format_timestamp(value: datetime | None) -> str:
    """Encode a time as RFC 3339 in UTC; None stands for the zero time.

    Naive datetimes are taken to be UTC.
    """
    moment = ZERO_TIME if value is None else _as_utc(value)
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    return text + "Z"


def parse_timestamp(value: str) -> datetime | None:
    """Decode an RFC 3339 time into an aware UTC datetime; the zero time gives None.

    Raises ValueError when the text is not a valid timestamp.
    """
    match = _TIMESTAMP_RE.fullmatch(value)
    if match is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    microsecond = int((fraction or "").ljust(6, "0")[:6])
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    try:
        moment = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second),
            microsecond, tzinfo=tz,
        ).astimezone(timezone.utc)
    except OverflowError as exc:
        raise ValueError(f"invalid timestamp: {value!r}") from exc
    return None if moment == ZERO_TIME else moment


def format_optional_timestamp(value: datetime | None) -> str:
    """Encode a time, or return an empty string for a missing one."""
    if _is_zero(value):
        return ""
    return format_timestamp(value)


def parse_optional_timestamp(value: str) -> datetime | None:
    """Decode a time, giving None for empty or unreadable text."""
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def map_sql_error(error: BaseException | None) -> BaseException | None:
    """Turn constraint violations into ConflictError; pass other errors through."""
    if error is None:
        return None
    message = str(error)
    if "FOREIGN KEY constraint failed" in message or "UNIQUE constraint failed" in message:
        mapped = ConflictError(message)
        mapped.__cause__ = error
        return mapped
    return error