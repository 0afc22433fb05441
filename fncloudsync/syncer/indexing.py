"""File index entries and conflict records written back after a sync."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from fncloudsync.domain import (
    ConflictRecord,
    FileIndexEntry,
    RemoteEntry,
    SyncAction,
    SyncActionType,
    Task,
)
from fncloudsync.syncer.paths import (
    entry_type_for_action,
    file_index_id,
    sync_state_for_entry,
)
from fncloudsync.syncer.planner import LocalEntry

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SYNCED_FILE_ACTIONS = (SyncActionType.UPLOAD_FILE, SyncActionType.DOWNLOAD_FILE)
_CONFLICT_ACTIONS = (
    SyncActionType.MOVE_CONFLICT_REMOTE,
    SyncActionType.MOVE_CONFLICT_LOCAL,
)
_DIR_ACTIONS = (SyncActionType.CREATE_DIR_LOCAL, SyncActionType.CREATE_DIR_REMOTE)


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _now(now: datetime | None) -> datetime:
    return _utc(now) if now is not None else datetime.now(timezone.utc)


def _local_stat(path: str) -> tuple[int, datetime] | None:
    """Size and UTC modification time of a local path, or None if it cannot be read."""
    try:
        info = os.stat(path)
    except OSError:
        return None
    return info.st_size, datetime.fromtimestamp(info.st_mtime, timezone.utc)


def _direction(task: Task) -> str:
    return str(task.direction)


def build_index_entries(
    task: Task,
    local_entries: Mapping[str, LocalEntry],
    remote_entries: Mapping[str, RemoteEntry],
    previous_index: Mapping[str, FileIndexEntry],
    now: datetime | None = None,
) -> list[FileIndexEntry]:
    """Index entries for every path seen locally, remotely or in the previous index.

    Entries come back ordered by relative path.
    """
    synced_at = _now(now)
    paths = set(local_entries) | set(remote_entries) | set(previous_index)
    entries: list[FileIndexEntry] = []
    for rel_path in sorted(paths):
        local = local_entries.get(rel_path)
        remote = remote_entries.get(rel_path)
        previous = previous_index.get(rel_path) or FileIndexEntry()
        has_local = local is not None
        has_remote = remote is not None
        is_dir = (has_local and local.is_dir) or (has_remote and remote.is_dir)

        item = FileIndexEntry(
            id=file_index_id(task.id, rel_path),
            task_id=task.id,
            relative_path=rel_path,
            entry_type="dir" if is_dir else "file",
            local_exists=has_local,
            remote_exists=has_remote,
            last_sync_direction=_direction(task),
            last_sync_at=synced_at,
            version=max(previous.version + 1, 1),
            deleted_tombstone=previous.deleted_tombstone,
        )
        if local is not None:
            item.local_size = local.size
            stat_result = _local_stat(local.path)
            if stat_result is not None:
                item.local_mtime = stat_result[1]
        if remote is not None:
            item.remote_size = remote.size
            item.remote_mtime = _utc(remote.mtime)
            item.remote_etag = remote.etag
        if not has_local or not has_remote:
            item.deleted_tombstone = previous.local_exists or previous.remote_exists
        if has_local and has_remote:
            item.deleted_tombstone = False
        item.sync_state = sync_state_for_entry(
            has_local, has_remote, item.deleted_tombstone, False
        )
        entries.append(item)
    return entries


def action_result_entry(
    task: Task,
    action: SyncAction,
    previous: FileIndexEntry | None,
    now: datetime | None = None,
) -> FileIndexEntry | None:
    """The index entry for a path after one action ran on it.

    Returns None for action types that leave no single-path record, such as moves.
    """
    previous = previous or FileIndexEntry()
    entry = replace(
        previous,
        id=file_index_id(task.id, action.relative_path),
        task_id=task.id,
        relative_path=action.relative_path,
        entry_type=entry_type_for_action(action),
        last_sync_direction=_direction(task),
        last_sync_at=_now(now),
        version=max(previous.version + 1, 1),
    )

    if action.type in _DIR_ACTIONS:
        entry.local_exists = True
        entry.remote_exists = True
        entry.entry_type = "dir"
        entry.conflict_flag = False
        entry.deleted_tombstone = False
    elif action.type in _SYNCED_FILE_ACTIONS or action.type in _CONFLICT_ACTIONS:
        conflicted = action.type in _CONFLICT_ACTIONS
        entry.local_exists = True
        entry.remote_exists = True
        entry.entry_type = "file"
        entry.conflict_flag = conflicted
        entry.deleted_tombstone = False
        stat_result = _local_stat(action.local_path)
        if stat_result is not None:
            entry.local_size, entry.local_mtime = stat_result
    elif action.type == SyncActionType.DELETE_LOCAL:
        entry.local_exists = False
        entry.deleted_tombstone = True
    elif action.type == SyncActionType.DELETE_REMOTE:
        entry.remote_exists = False
        entry.deleted_tombstone = True
    elif action.type != SyncActionType.REFRESH_METADATA:
        return None

    entry.sync_state = sync_state_for_entry(
        entry.local_exists,
        entry.remote_exists,
        entry.deleted_tombstone,
        entry.conflict_flag,
    )
    return entry


def move_result_entries(
    task: Task,
    action: SyncAction,
    previous_index: Mapping[str, FileIndexEntry],
    now: datetime | None = None,
) -> tuple[FileIndexEntry, FileIndexEntry]:
    """Index entries for the source and the destination of a move, in that order."""
    synced_at = _now(now)
    source = previous_index.get(action.source_relative_path) or FileIndexEntry()
    dest = previous_index.get(action.relative_path) or FileIndexEntry()
    entry_type = entry_type_for_action(action)

    carried = dict(
        task_id=task.id,
        entry_type=entry_type,
        local_size=source.local_size,
        remote_size=source.remote_size,
        local_mtime=source.local_mtime,
        remote_mtime=source.remote_mtime,
        local_file_id=source.local_file_id,
        remote_etag=source.remote_etag,
        content_hash=source.content_hash,
        last_sync_direction=_direction(task),
        last_sync_at=synced_at,
        conflict_flag=False,
        deleted_tombstone=False,
    )

    source_entry = FileIndexEntry(
        id=file_index_id(task.id, action.source_relative_path),
        relative_path=action.source_relative_path,
        local_exists=False,
        remote_exists=False,
        version=max(source.version + 1, 1),
        sync_state="missing",
        **carried,
    )
    dest_entry = FileIndexEntry(
        id=file_index_id(task.id, action.relative_path),
        relative_path=action.relative_path,
        local_exists=True,
        remote_exists=True,
        version=max(max(source.version, dest.version) + 1, 1),
        sync_state="synced",
        **carried,
    )
    stat_result = _local_stat(action.local_path)
    if stat_result is not None:
        dest_entry.local_size, dest_entry.local_mtime = stat_result
    return source_entry, dest_entry


def _unix_nanos(value: datetime) -> int:
    delta = value - _EPOCH
    return delta // timedelta(microseconds=1) * 1000


def conflict_record_for_action(
    task: Task,
    action: SyncAction,
    detected_at: datetime | None = None,
) -> ConflictRecord | None:
    """The conflict history record for an action, or None if it records no conflict."""
    if action.type != SyncActionType.MOVE_CONFLICT_REMOTE:
        return None
    when = _now(detected_at)
    return ConflictRecord(
        id=f"{task.id}-conflict-{action.relative_path}-{_unix_nanos(when)}",
        task_id=task.id,
        relative_path=action.relative_path,
        local_conflict_path=action.conflict_path,
        remote_conflict_path=action.remote_path,
        policy=task.conflict_policy,
        detected_at=when,
    )