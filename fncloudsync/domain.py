"""Domain model shared by the store, the sync engine and the watcher."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class DomainError(Exception):
    """Base class for errors reported by the domain layer."""


class NotFoundError(DomainError):
    """The requested record does not exist."""


class ConflictError(DomainError):
    """The operation violates a uniqueness or reference constraint."""


class InvalidArgumentError(DomainError, ValueError):
    """An argument has a value the operation cannot handle."""


class TaskDirection(StrEnum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    BIDIRECTIONAL = "bidirectional"


class TaskStatus(StrEnum):
    CREATED = "created"
    RUNNING = "running"


class SyncActionType(StrEnum):
    CREATE_DIR_LOCAL = "CreateDirLocal"
    CREATE_DIR_REMOTE = "CreateDirRemote"
    UPLOAD_FILE = "UploadFile"
    DOWNLOAD_FILE = "DownloadFile"
    DELETE_LOCAL = "DeleteLocal"
    DELETE_REMOTE = "DeleteRemote"
    MOVE_LOCAL = "MoveLocal"
    MOVE_REMOTE = "MoveRemote"
    MOVE_CONFLICT_LOCAL = "MoveConflictLocal"
    MOVE_CONFLICT_REMOTE = "MoveConflictRemote"
    REFRESH_METADATA = "RefreshMetadata"


@dataclass(kw_only=True)
class Task:
    """A sync task binding a local directory to a remote one."""

    id: str = ""
    name: str = ""
    connection_id: str = ""
    local_path: str = ""
    remote_path: str = ""
    direction: TaskDirection | str = ""
    poll_interval_sec: int = 0
    conflict_policy: str = ""
    delete_policy: str = ""
    empty_dir_policy: str = ""
    bandwidth_limit_kbps: int = 0
    max_workers: int = 0
    encryption_enabled: bool = False
    hash_mode: str = ""
    status: TaskStatus | str = ""
    desired_state: str = ""
    last_error: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(kw_only=True)
class Connection:
    """Credentials and settings for reaching a remote store."""

    id: str = ""
    name: str = ""
    endpoint: str = ""
    username: str = ""
    password_ciphertext: str = ""
    root_path: str = ""
    tls_mode: str = ""
    timeout_sec: int = 0
    capabilities_json: str = ""
    status: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(kw_only=True)
class RemoteEntry:
    """One file or directory as reported by the remote store."""

    path: str = ""
    is_dir: bool = False
    exists: bool = False
    size: int = 0
    mtime: datetime | None = None
    etag: str = ""


@dataclass(kw_only=True)
class FileIndexEntry:
    """What was last known about one path of a task on both sides."""

    id: str = ""
    task_id: str = ""
    relative_path: str = ""
    entry_type: str = ""
    local_exists: bool = False
    remote_exists: bool = False
    local_size: int = 0
    remote_size: int = 0
    local_mtime: datetime | None = None
    remote_mtime: datetime | None = None
    local_file_id: str = ""
    remote_etag: str = ""
    content_hash: str = ""
    last_sync_direction: str = ""
    last_sync_at: datetime | None = None
    version: int = 0
    sync_state: str = ""
    conflict_flag: bool = False
    deleted_tombstone: bool = False


@dataclass(kw_only=True)
class SyncAction:
    """A single step of a sync plan."""

    type: SyncActionType | str = ""
    relative_path: str = ""
    source_relative_path: str = ""
    local_path: str = ""
    source_local_path: str = ""
    remote_path: str = ""
    source_remote_path: str = ""
    conflict_path: str = ""
    is_dir: bool = False


@dataclass(kw_only=True)
class ConflictRecord:
    id: str = ""
    task_id: str = ""
    relative_path: str = ""
    local_conflict_path: str = ""
    remote_conflict_path: str = ""
    policy: str = ""
    detected_at: datetime | None = None


@dataclass(kw_only=True)
class FailureRecord:
    id: str = ""
    task_id: str = ""
    path: str = ""
    op_type: str = ""
    error_code: str = ""
    error_message: str = ""
    retryable: bool = False
    first_failed_at: datetime | None = None
    last_failed_at: datetime | None = None
    attempt_count: int = 0
    resolved_at: datetime | None = None


@dataclass(kw_only=True)
class OperationQueueItem:
    id: str = ""
    task_id: str = ""
    op_type: str = ""
    target_path: str = ""
    src_side: str = ""
    reason: str = ""
    payload_json: str = ""
    priority: int = 0
    status: str = ""
    attempt_count: int = 0
    next_attempt_at: datetime | None = None
    last_error: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(kw_only=True)
class TaskEvent:
    id: str = ""
    task_id: str = ""
    event_type: str = ""
    level: str = ""
    message: str = ""
    details_json: str = ""
    created_at: datetime | None = None


@dataclass(kw_only=True)
class TaskRuntimeState:
    task_id: str = ""
    phase: str = ""
    last_local_scan_at: datetime | None = None
    last_remote_scan_at: datetime | None = None
    last_reconcile_at: datetime | None = None
    last_success_at: datetime | None = None
    backoff_until: datetime | None = None
    retry_streak: int = 0
    last_error: str = ""
    checkpoint_json: str = ""
    updated_at: datetime | None = None