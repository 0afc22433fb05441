"""Path helpers and small rules shared by the sync planner and runner."""

from __future__ import annotations

import os

from fncloudsync.domain import (
    FileIndexEntry,
    SyncAction,
    SyncActionType,
    Task,
    TaskDirection,
)

_SEPARATORS = {"/", os.sep}
_ID_REPLACEMENTS = str.maketrans({"/": "_", "\\": "_", " ": "_"})


def _extension(path: str) -> str:
    """The suffix from the last dot of the final path element, dot included."""
    for index in range(len(path) - 1, -1, -1):
        char = path[index]
        if char in _SEPARATORS:
            return ""
        if char == ".":
            return path[index:]
    return ""


def join_remote_path(base: str, rel: str) -> str:
    """Join a remote base directory and a slash-separated relative path."""
    base = base.rstrip("/")
    rel = rel.lstrip("/")
    if not base:
        return "/" + rel
    return f"{base}/{rel}"


def detect_content_type(path: str) -> str:
    """Content type sent with an upload, chosen by file extension."""
    if _extension(path).lower() in (".txt", ".md"):
        return "text/plain"
    return "application/octet-stream"


def _conflict_path(path: str, marker: str, version: int) -> str:
    ext = _extension(path)
    base = path[: len(path) - len(ext)] if ext else path
    return f"{base}.{marker}-conflict-v{max(version, 1)}{ext}"


def conflict_local_path(path: str, version: int) -> str:
    """Local name under which the remote side of a conflict is kept."""
    return _conflict_path(path, "remote", version)


def conflict_remote_path(path: str, version: int) -> str:
    """Remote name under which the local side of a conflict is kept."""
    return _conflict_path(path, "local", version)


def sync_state_for_entry(
    local_exists: bool,
    remote_exists: bool,
    deleted_tombstone: bool,
    conflict_flag: bool,
) -> str:
    """The sync state a file index entry has for the given flags."""
    if conflict_flag:
        return "conflicted"
    if local_exists and remote_exists:
        return "synced"
    if deleted_tombstone:
        return "tombstoned"
    if local_exists or remote_exists:
        return "pending"
    return "missing"


def file_index_id(task_id: str, rel_path: str) -> str:
    """Identifier of a task's file index entry for a relative path."""
    rel_path = rel_path or "."
    return f"{task_id}-{rel_path.translate(_ID_REPLACEMENTS)}"


def next_conflict_version(previous: FileIndexEntry) -> int:
    """Version number used in the names of the next conflict copies."""
    if previous.version <= 0:
        return 1
    return previous.version + 1


def is_move_candidate(previous: FileIndexEntry) -> bool:
    """Whether an indexed path was cleanly synced and may take part in a rename."""
    return (
        previous.local_exists
        and previous.remote_exists
        and not previous.deleted_tombstone
        and not previous.conflict_flag
        and previous.sync_state == "synced"
    )


def should_delete_from_index(task: Task, previous: FileIndexEntry) -> bool:
    """Whether a path missing on one side was deleted there and should go on the other."""
    return (
        task.direction == TaskDirection.BIDIRECTIONAL
        and task.delete_policy == "mirror"
        and previous.local_exists
        and previous.remote_exists
        and not previous.deleted_tombstone
    )


def entry_type_for_action(action: SyncAction) -> str:
    """"dir" for actions on directories, "file" otherwise."""
    if action.is_dir or action.type in (
        SyncActionType.CREATE_DIR_LOCAL,
        SyncActionType.CREATE_DIR_REMOTE,
    ):
        return "dir"
    return "file"