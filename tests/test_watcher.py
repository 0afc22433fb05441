import os
import queue
import threading
import time

import pytest

from fncloudsync.domain import Task, TaskDirection, TaskStatus
from fncloudsync.watcher import (
    Watcher,
    WatchdogBackend,
    list_watch_dirs,
    path_within_root,
    should_watch,
)


class StubTaskRunner:
    def __init__(self, items):
        self.items = items
        self.executed = []

    def list(self):
        return list(self.items)

    def execute_running_task(self, task_id):
        self.executed.append(task_id)


class FakeBackend:
    def __init__(self):
        self.added = []
        self.removed = []
        self.closed = False
        self.events = queue.Queue()
        self.errors = queue.Queue()

    def add(self, path):
        self.added.append(path)

    def remove(self, path):
        self.removed.append(path)

    def close(self):
        self.closed = True


def wait_for(condition, timeout=1.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def _task(path, direction=TaskDirection.UPLOAD, status=TaskStatus.RUNNING, task_id="task-1"):
    return Task(id=task_id, local_path=str(path), direction=direction, status=status)


def _start(watcher):
    stop = threading.Event()
    thread = threading.Thread(target=watcher.run, args=(stop,), daemon=True)
    thread.start()
    return stop, thread


def test_triggers_running_upload_task_on_event(tmp_path):
    root = os.path.normpath(str(tmp_path / "sync"))
    backend = FakeBackend()
    tasks = StubTaskRunner([_task(root)])
    watcher = Watcher(tasks, 0.02, 0, lambda: backend, None)

    stop, thread = _start(watcher)
    try:
        assert wait_for(lambda: backend.added == [root])
        backend.events.put(os.path.join(root, "docs", "readme.txt"))
        assert wait_for(lambda: tasks.executed == ["task-1"])
    finally:
        stop.set()
        thread.join(timeout=2)
    assert backend.closed is True


def test_ignores_download_only_tasks(tmp_path):
    root = str(tmp_path / "sync")
    backend = FakeBackend()
    tasks = StubTaskRunner([_task(root, direction=TaskDirection.DOWNLOAD)])
    watcher = Watcher(tasks, 0.02, 0, lambda: backend, None)

    stop, thread = _start(watcher)
    try:
        time.sleep(0.06)
        assert backend.added == []
        backend.events.put(os.path.join(root, "docs", "readme.txt"))
        time.sleep(0.06)
        assert tasks.executed == []
    finally:
        stop.set()
        thread.join(timeout=2)


def test_run_returns_when_backend_cannot_be_made():
    tasks = StubTaskRunner([])

    def failing():
        raise OSError("no watches available")

    watcher = Watcher(tasks, 0.02, 0, failing, None)
    stop = threading.Event()
    thread = threading.Thread(target=watcher.run, args=(stop,), daemon=True)
    thread.start()
    thread.join(timeout=1)
    assert not thread.is_alive()


def test_reconcile_watches_every_subdirectory(tmp_path):
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "c").mkdir()
    backend = FakeBackend()
    watcher = Watcher(StubTaskRunner([_task(tmp_path)]), 1.0, 0, lambda: backend, None)

    watcher.reconcile(backend)

    root = os.path.normpath(str(tmp_path))
    assert sorted(backend.added) == sorted(
        [root, os.path.join(root, "a"), os.path.join(root, "a", "b"), os.path.join(root, "c")]
    )


def test_reconcile_removes_watches_of_stopped_tasks(tmp_path):
    root = os.path.normpath(str(tmp_path))
    backend = FakeBackend()
    tasks = StubTaskRunner([_task(root)])
    watcher = Watcher(tasks, 1.0, 0, lambda: backend, None)
    watcher.reconcile(backend)

    tasks.items = [_task(root, status=TaskStatus.CREATED)]
    watcher.reconcile(backend)
    watcher.handle_event(os.path.join(root, "file.txt"))

    assert backend.removed == [root]
    assert tasks.executed == []


def test_reconcile_does_not_add_twice(tmp_path):
    backend = FakeBackend()
    watcher = Watcher(StubTaskRunner([_task(tmp_path)]), 1.0, 0, lambda: backend, None)

    watcher.reconcile(backend)
    watcher.reconcile(backend)

    assert backend.added == [os.path.normpath(str(tmp_path))]


def test_debounce_suppresses_repeated_triggers(tmp_path):
    backend = FakeBackend()
    tasks = StubTaskRunner([_task(tmp_path)])
    watcher = Watcher(tasks, 1.0, 60.0, lambda: backend, None)
    watcher.reconcile(backend)

    watcher.handle_event(str(tmp_path / "one.txt"))
    watcher.handle_event(str(tmp_path / "two.txt"))

    assert tasks.executed == ["task-1"]


def test_without_debounce_every_event_triggers(tmp_path):
    backend = FakeBackend()
    tasks = StubTaskRunner([_task(tmp_path)])
    watcher = Watcher(tasks, 1.0, 0, lambda: backend, None)
    watcher.reconcile(backend)

    watcher.handle_event(str(tmp_path / "one.txt"))
    watcher.handle_event(str(tmp_path / "two.txt"))
    watcher.handle_event(str(tmp_path.parent / "elsewhere.txt"))

    assert tasks.executed == ["task-1", "task-1"]


@pytest.mark.parametrize(
    ("direction", "status", "expected"),
    [
        (TaskDirection.UPLOAD, TaskStatus.RUNNING, True),
        (TaskDirection.BIDIRECTIONAL, TaskStatus.RUNNING, True),
        (TaskDirection.DOWNLOAD, TaskStatus.RUNNING, False),
        (TaskDirection.UPLOAD, TaskStatus.CREATED, False),
    ],
)
def test_should_watch(direction, status, expected):
    assert should_watch(Task(direction=direction, status=status)) is expected


@pytest.mark.parametrize(
    ("path", "root", "expected"),
    [
        (os.path.join(os.sep, "tmp", "sync"), os.path.join(os.sep, "tmp", "sync"), True),
        (os.path.join(os.sep, "tmp", "sync", "a.txt"), os.path.join(os.sep, "tmp", "sync"), True),
        (os.path.join(os.sep, "tmp", "syncer"), os.path.join(os.sep, "tmp", "sync"), False),
        (os.path.join(os.sep, "tmp"), os.path.join(os.sep, "tmp", "sync"), False),
    ],
)
def test_path_within_root(path, root, expected):
    assert path_within_root(path, root) is expected


def test_list_watch_dirs_of_missing_root_is_root(tmp_path):
    missing = str(tmp_path / "missing")
    assert list_watch_dirs(missing) == [os.path.normpath(missing)]


def test_list_watch_dirs_skips_files(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "file.txt").write_text("x")
    root = os.path.normpath(str(tmp_path))
    assert list_watch_dirs(str(tmp_path)) == [root, os.path.join(root, "sub")]


def test_watchdog_backend_reports_changes(tmp_path):
    backend = WatchdogBackend()
    target = os.path.normpath(str(tmp_path / "new.txt"))
    seen = set()
    try:
        backend.add(str(tmp_path))
        (tmp_path / "new.txt").write_text("payload")
        deadline = time.monotonic() + 5.0
        while target not in seen and time.monotonic() < deadline:
            try:
                seen.add(os.path.normpath(backend.events.get(timeout=0.05)))
            except queue.Empty:
                continue
    finally:
        backend.close()
    assert target in seen


def test_watchdog_backend_remove_unknown_raises(tmp_path):
    backend = WatchdogBackend()
    try:
        with pytest.raises(KeyError):
            backend.remove(str(tmp_path))
    finally:
        backend.close()