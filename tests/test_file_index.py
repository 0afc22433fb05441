from dataclasses import replace
from datetime import datetime, timezone

import pytest

from fncloudsync.domain import ConflictError, FileIndexEntry, NotFoundError
from fncloudsync.store.db import migrate, open_database
from fncloudsync.store.file_index import FileIndexRepository

STAMP = "2026-03-24T09:00:00Z"


@pytest.fixture
def db(tmp_path):
    conn = open_database(tmp_path / "test.db")
    migrate(conn)
    conn.execute(
        "INSERT INTO connections (id, name, endpoint, username, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        ("conn-1", "primary", "https://dav.example.com", "user", STAMP, STAMP),
    )
    conn.execute(
        "INSERT INTO tasks (id, name, connection_id, local_path, remote_path, direction, "
        "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        ("task-1", "task", "conn-1", "/tmp/sync", "/remote", "bidirectional", STAMP, STAMP),
    )
    yield conn
    conn.close()


@pytest.fixture
def repo(db):
    return FileIndexRepository(db)


def _entry(**overrides):
    entry = FileIndexEntry(
        id="idx-1",
        task_id="task-1",
        relative_path="docs/readme.txt",
        entry_type="file",
        local_exists=True,
        remote_exists=True,
        local_size=5,
        remote_size=5,
        last_sync_direction="bidirectional",
        last_sync_at=datetime(2026, 3, 24, 12, 0, 0, tzinfo=timezone.utc),
        version=1,
        sync_state="synced",
    )
    return replace(entry, **overrides)


def test_upsert_and_list(repo):
    entry = _entry()
    repo.upsert(entry)

    entry.version = 2
    entry.deleted_tombstone = True
    entry.remote_exists = False
    repo.upsert(entry)

    items = repo.list_by_task_id("task-1")
    assert len(items) == 1
    assert items[0].version == 2
    assert items[0].deleted_tombstone is True
    assert items[0].remote_exists is False


def test_get_round_trip(repo):
    entry = _entry(
        local_mtime=datetime(2026, 3, 24, 11, 0, 0, 123456, tzinfo=timezone.utc),
        remote_etag='"etag-1"',
        conflict_flag=True,
    )
    repo.upsert(entry)
    assert repo.get_by_task_id_and_path("task-1", "docs/readme.txt") == entry


def test_missing_times_stay_none(repo):
    repo.upsert(_entry(last_sync_at=None))
    loaded = repo.get_by_task_id_and_path("task-1", "docs/readme.txt")
    assert loaded.last_sync_at is None
    assert loaded.local_mtime is None


def test_get_missing_raises_not_found(repo):
    with pytest.raises(NotFoundError):
        repo.get_by_task_id_and_path("task-1", "nope.txt")


def test_list_orders_by_relative_path(repo):
    repo.upsert(_entry(id="b", relative_path="b.txt"))
    repo.upsert(_entry(id="a", relative_path="a.txt"))
    repo.upsert(_entry(id="c", relative_path="c/d.txt"))
    assert [item.relative_path for item in repo.list_by_task_id("task-1")] == [
        "a.txt",
        "b.txt",
        "c/d.txt",
    ]


def test_list_other_task_is_empty(repo):
    repo.upsert(_entry())
    assert repo.list_by_task_id("task-2") == []


def test_unknown_task_raises_conflict(repo):
    with pytest.raises(ConflictError):
        repo.upsert(_entry(task_id="ghost"))