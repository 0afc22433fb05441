"""Local snapshots and the one-way sync plans built from them."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from os import PathLike

from fncloudsync.domain import RemoteEntry, SyncAction, SyncActionType, Task
from fncloudsync.syncer.paths import join_remote_path


@dataclass(kw_only=True)
class LocalEntry:
    """One file or directory found under a task's local root."""

    path: str
    is_dir: bool = False
    size: int = 0
    mtime: datetime | None = None


def _local_join(root: str, rel_path: str) -> str:
    """Local path of a slash-separated relative path under root."""
    return os.path.normpath(os.path.join(root, rel_path.replace("/", os.sep)))


def _depth_first(paths: list[str]) -> list[str]:
    return sorted(paths, key=lambda rel: (-rel.count("/"), rel))


def _walk(directory: str, prefix: str, items: dict[str, LocalEntry]) -> None:
    with os.scandir(directory) as iterator:
        entries = sorted(iterator, key=lambda entry: entry.name)
    for entry in entries:
        rel_path = f"{prefix}/{entry.name}" if prefix else entry.name
        if entry.is_dir(follow_symlinks=False):
            items[rel_path] = LocalEntry(path=entry.path, is_dir=True)
            _walk(entry.path, rel_path, items)
        else:
            info = entry.stat(follow_symlinks=False)
            items[rel_path] = LocalEntry(
                path=entry.path,
                size=info.st_size,
                mtime=datetime.fromtimestamp(info.st_mtime, timezone.utc),
            )


def snapshot_local(root: str | PathLike[str]) -> dict[str, LocalEntry]:
    """Everything under root keyed by slash-separated relative path, parents first.

    Symbolic links are recorded but not followed. Raises OSError if root
    cannot be read.
    """
    root = os.fspath(root)
    items: dict[str, LocalEntry] = {}
    if not stat.S_ISDIR(os.lstat(root).st_mode):
        return items
    _walk(root, "", items)
    return items


def plan_upload(
    task: Task,
    local_entries: dict[str, LocalEntry],
    remote_entries: dict[str, RemoteEntry],
) -> list[SyncAction]:
    """Push every local entry; with the mirror policy also drop remote extras."""
    actions: list[SyncAction] = []
    for rel_path in sorted(local_entries):
        entry = local_entries[rel_path]
        remote_path = join_remote_path(task.remote_path, rel_path)
        actions.append(
            SyncAction(
                type=SyncActionType.CREATE_DIR_REMOTE if entry.is_dir else SyncActionType.UPLOAD_FILE,
                relative_path=rel_path,
                local_path=entry.path,
                remote_path=remote_path,
                is_dir=entry.is_dir,
            )
        )

    if task.delete_policy == "mirror":
        extras = [rel for rel in remote_entries if rel not in local_entries]
        for rel_path in _depth_first(extras):
            remote = remote_entries[rel_path]
            actions.append(
                SyncAction(
                    type=SyncActionType.DELETE_REMOTE,
                    relative_path=rel_path,
                    remote_path=remote.path,
                    is_dir=remote.is_dir,
                )
            )
    return actions


def plan_download(
    task: Task,
    local_entries: dict[str, LocalEntry],
    remote_entries: dict[str, RemoteEntry],
) -> list[SyncAction]:
    """Pull every remote entry; with the mirror policy also drop local extras."""
    actions: list[SyncAction] = []
    for rel_path in sorted(remote_entries):
        entry = remote_entries[rel_path]
        actions.append(
            SyncAction(
                type=SyncActionType.CREATE_DIR_LOCAL if entry.is_dir else SyncActionType.DOWNLOAD_FILE,
                relative_path=rel_path,
                local_path=_local_join(task.local_path, rel_path),
                remote_path=entry.path,
                is_dir=entry.is_dir,
            )
        )

    if task.delete_policy == "mirror":
        extras = [rel for rel in local_entries if rel not in remote_entries]
        for rel_path in _depth_first(extras):
            local = local_entries[rel_path]
            actions.append(
                SyncAction(
                    type=SyncActionType.DELETE_LOCAL,
                    relative_path=rel_path,
                    local_path=local.path,
                    is_dir=local.is_dir,
                )
            )
    return actions