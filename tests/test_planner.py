import os
from datetime import timezone

import pytest

from fncloudsync.domain import RemoteEntry, SyncActionType, Task
from fncloudsync.syncer.planner import (
    LocalEntry,
    plan_download,
    plan_upload,
    snapshot_local,
)


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "readme.txt").write_bytes(b"hello")
    (tmp_path / "report.txt").write_bytes(b"payload")
    return tmp_path


def _find(actions, action_type, rel_path):
    return [a for a in actions if a.type == action_type and a.relative_path == rel_path]


def test_snapshot_local_lists_entries_with_slash_paths(tree):
    items = snapshot_local(tree)
    assert sorted(items) == ["docs", "docs/readme.txt", "report.txt"]
    assert items["docs"].is_dir is True
    assert items["docs/readme.txt"].path == os.path.join(str(tree), "docs", "readme.txt")


def test_snapshot_local_records_file_size_and_utc_mtime(tree):
    entry = snapshot_local(tree)["docs/readme.txt"]
    assert entry.is_dir is False
    assert entry.size == len(b"hello")
    assert entry.mtime is not None and entry.mtime.tzinfo == timezone.utc
    assert entry.mtime.timestamp() == pytest.approx(
        os.stat(tree / "docs" / "readme.txt").st_mtime
    )


def test_snapshot_local_directories_carry_no_size(tree):
    entry = snapshot_local(tree)["docs"]
    assert entry.size == 0
    assert entry.mtime is None


def test_snapshot_local_parents_come_first(tree):
    keys = list(snapshot_local(tree))
    assert keys.index("docs") < keys.index("docs/readme.txt")


def test_snapshot_local_empty_root(tmp_path):
    assert snapshot_local(tmp_path) == {}


def test_snapshot_local_missing_root_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        snapshot_local(tmp_path / "absent")


def test_plan_upload_creates_dirs_and_uploads_files(tree):
    task = Task(local_path=str(tree), remote_path="/remote")
    actions = plan_upload(task, snapshot_local(tree), {})
    (mkdir,) = _find(actions, SyncActionType.CREATE_DIR_REMOTE, "docs")
    assert mkdir.remote_path == "/remote/docs"
    assert mkdir.is_dir is True
    (upload,) = _find(actions, SyncActionType.UPLOAD_FILE, "docs/readme.txt")
    assert upload.remote_path == "/remote/docs/readme.txt"
    assert upload.local_path == os.path.join(str(tree), "docs", "readme.txt")
    assert len(actions) == 3


def test_plan_upload_creates_directory_before_uploading_into_it(tree):
    task = Task(local_path=str(tree), remote_path="/remote")
    actions = plan_upload(task, snapshot_local(tree), {})
    order = [a.relative_path for a in actions]
    assert order.index("docs") < order.index("docs/readme.txt")


def test_plan_upload_mirror_deletes_remote_extras(tmp_path):
    (tmp_path / "keep.txt").write_bytes(b"keep")
    remote = {
        "keep.txt": RemoteEntry(path="/remote/keep.txt", exists=True),
        "old.txt": RemoteEntry(path="/remote/old.txt", exists=True),
    }
    task = Task(local_path=str(tmp_path), remote_path="/remote", delete_policy="mirror")
    actions = plan_upload(task, snapshot_local(tmp_path), remote)
    deletes = [a for a in actions if a.type == SyncActionType.DELETE_REMOTE]
    assert [a.remote_path for a in deletes] == ["/remote/old.txt"]


def test_plan_upload_without_mirror_keeps_remote_extras(tmp_path):
    remote = {"old.txt": RemoteEntry(path="/remote/old.txt", exists=True)}
    task = Task(local_path=str(tmp_path), remote_path="/remote")
    assert plan_upload(task, {}, remote) == []


def test_plan_upload_mirror_deletes_children_before_parents():
    remote = {
        "old": RemoteEntry(path="/remote/old", is_dir=True),
        "old/a.txt": RemoteEntry(path="/remote/old/a.txt"),
    }
    task = Task(remote_path="/remote", delete_policy="mirror")
    actions = plan_upload(task, {}, remote)
    assert [a.relative_path for a in actions] == ["old/a.txt", "old"]
    assert actions[1].is_dir is True


def test_plan_download_creates_local_dirs_and_downloads(tmp_path):
    remote = {
        "docs": RemoteEntry(path="/remote/docs", is_dir=True, exists=True),
        "docs/readme.txt": RemoteEntry(path="/remote/docs/readme.txt", exists=True),
        "report.txt": RemoteEntry(path="/remote/report.txt", exists=True),
    }
    task = Task(local_path=str(tmp_path), remote_path="/remote")
    actions = plan_download(task, {}, remote)
    (mkdir,) = _find(actions, SyncActionType.CREATE_DIR_LOCAL, "docs")
    assert mkdir.local_path == os.path.join(str(tmp_path), "docs")
    (download,) = _find(actions, SyncActionType.DOWNLOAD_FILE, "docs/readme.txt")
    assert download.local_path == os.path.join(str(tmp_path), "docs", "readme.txt")
    assert download.remote_path == "/remote/docs/readme.txt"
    assert len(actions) == 3


def test_plan_download_mirror_deletes_local_extras(tmp_path):
    (tmp_path / "old.txt").write_bytes(b"stale")
    remote = {"keep.txt": RemoteEntry(path="/remote/keep.txt", exists=True)}
    task = Task(local_path=str(tmp_path), remote_path="/remote", delete_policy="mirror")
    actions = plan_download(task, snapshot_local(tmp_path), remote)
    (delete,) = [a for a in actions if a.type == SyncActionType.DELETE_LOCAL]
    assert delete.relative_path == "old.txt"
    assert delete.local_path == os.path.join(str(tmp_path), "old.txt")


def test_plan_download_without_mirror_keeps_local_extras():
    local = {"old.txt": LocalEntry(path="/tmp/x/old.txt", size=5)}
    task = Task(local_path="/tmp/x", remote_path="/remote")
    assert plan_download(task, local, {}) == []


def test_plans_of_matching_sides_do_not_delete(tree):
    local = snapshot_local(tree)
    remote = {rel: RemoteEntry(path="/remote/" + rel, is_dir=e.is_dir) for rel, e in local.items()}
    task = Task(local_path=str(tree), remote_path="/remote", delete_policy="mirror")
    for actions in (plan_upload(task, local, remote), plan_download(task, local, remote)):
        assert all(
            a.type not in (SyncActionType.DELETE_LOCAL, SyncActionType.DELETE_REMOTE)
            for a in actions
        )
        assert {a.relative_path for a in actions} == set(local)