"""Watch the local roots of running tasks and trigger them on changes."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Iterable
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from fncloudsync.domain import Task, TaskDirection, TaskStatus

_POLL_SECONDS = 0.05
_DEFAULT_REFRESH_SECONDS = 1.0


class _TaskRunner(Protocol):
    def list(self) -> Iterable[Task]: ...

    def execute_running_task(self, task_id: str) -> None: ...


class Backend(Protocol):
    """A source of file-system change notifications for watched directories."""

    events: queue.Queue[str]
    errors: queue.Queue[BaseException]

    def add(self, path: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def close(self) -> None: ...


class _QueueingHandler(FileSystemEventHandler):
    def __init__(self, events: queue.Queue[str]) -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(os.fsdecode(event.src_path))
        dest = getattr(event, "dest_path", "")
        if dest:
            self._events.put(os.fsdecode(dest))


class WatchdogBackend:
    """Backend that watches single directories, not recursively, with watchdog."""

    def __init__(self) -> None:
        self.events: queue.Queue[str] = queue.Queue()
        self.errors: queue.Queue[BaseException] = queue.Queue()
        self._handler = _QueueingHandler(self.events)
        self._watches: dict[str, object] = {}
        self._observer = Observer()
        self._observer.daemon = True
        self._observer.start()

    def add(self, path: str) -> None:
        """Start watching a directory."""
        if path in self._watches:
            return
        self._watches[path] = self._observer.schedule(self._handler, path, recursive=False)

    def remove(self, path: str) -> None:
        """Stop watching a directory; raises KeyError if it is not watched."""
        watch = self._watches.pop(path)
        self._observer.unschedule(watch)

    def close(self) -> None:
        """Stop all watches and the observer thread."""
        self._observer.stop()
        self._observer.join()
        self._watches.clear()


def should_watch(task: Task) -> bool:
    """Only running tasks that push local changes are watched."""
    if task.status != TaskStatus.RUNNING:
        return False
    return task.direction in (TaskDirection.UPLOAD, TaskDirection.BIDIRECTIONAL)


def path_within_root(path: str, root: str) -> bool:
    """Whether path is root itself or lies below it."""
    if path == root:
        return True
    return path.startswith(root.rstrip(os.sep) + os.sep)


def list_watch_dirs(root: str) -> list[str]:
    """Every directory under root, root first; just root when none can be read."""
    dirs: list[str] = []
    for current, dirnames, _ in os.walk(root):
        dirs.append(os.path.normpath(current))
        dirnames[:] = sorted(
            name for name in dirnames if not os.path.islink(os.path.join(current, name))
        )
    return dirs or [os.path.normpath(root)]


def _task_for_watched_path(tasks: dict[str, Task], watched_path: str) -> Task | None:
    return next(
        (task for root, task in tasks.items() if path_within_root(watched_path, root)),
        None,
    )


class Watcher:
    """Keeps backend watches in line with running tasks and triggers them on events."""

    def __init__(
        self,
        tasks: _TaskRunner,
        refresh_interval: float = _DEFAULT_REFRESH_SECONDS,
        debounce: float = 0.0,
        backend_factory: Callable[[], Backend] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._tasks = tasks
        self._refresh_interval = refresh_interval
        self._debounce = debounce
        self._backend_factory: Callable[[], Backend] = backend_factory or WatchdogBackend
        self._logger = logger
        self._watched: dict[str, str] = {}
        self._roots: dict[str, Task] = {}
        self._last_triggered: dict[str, float] = {}

    def _log(self, message: str, *args: object) -> None:
        if self._logger is not None:
            self._logger.info(message, *args)

    def _interval(self) -> float:
        return self._refresh_interval if self._refresh_interval > 0 else _DEFAULT_REFRESH_SECONDS

    def run(self, stop_event: threading.Event) -> None:
        """Watch until stop_event is set; returns at once if no backend can be made."""
        try:
            backend = self._backend_factory()
        except Exception:
            return
        try:
            self.reconcile(backend)
            interval = self._interval()
            next_refresh = time.monotonic() + interval
            while not stop_event.is_set():
                timeout = max(0.0, min(next_refresh - time.monotonic(), _POLL_SECONDS))
                try:
                    path = backend.events.get(timeout=timeout)
                except queue.Empty:
                    pass
                else:
                    self.handle_event(path)
                self._drain_errors(backend)
                if time.monotonic() >= next_refresh:
                    self.reconcile(backend)
                    next_refresh = time.monotonic() + interval
        finally:
            backend.close()

    @staticmethod
    def _drain_errors(backend: Backend) -> None:
        while True:
            try:
                backend.errors.get_nowait()
            except queue.Empty:
                return

    def reconcile(self, backend: Backend) -> None:
        """Add watches for running tasks' directories and drop the rest."""
        try:
            tasks = list(self._tasks.list())
        except Exception:
            return

        active: dict[str, Task] = {}
        for task in tasks:
            if not should_watch(task):
                continue
            root = os.path.normpath(task.local_path)
            active[root] = task
            for directory in list_watch_dirs(root):
                if directory in self._watched:
                    continue
                try:
                    backend.add(directory)
                except Exception:
                    continue
                self._watched[directory] = task.id
                self._log("watcher add path task_id=%s path=%s", task.id, directory)

        for watched_path in list(self._watched):
            task = _task_for_watched_path(active, watched_path)
            if task is not None and path_within_root(
                watched_path, os.path.normpath(task.local_path)
            ):
                continue
            try:
                backend.remove(watched_path)
            except Exception:
                pass
            self._log(
                "watcher remove path task_id=%s path=%s",
                self._watched[watched_path],
                watched_path,
            )
            del self._watched[watched_path]

        self._roots = active

    def _should_trigger(self, task_id: str, now: float) -> bool:
        if self._debounce <= 0:
            return True
        last = self._last_triggered.get(task_id)
        return last is None or now - last >= self._debounce

    def handle_event(self, path: str) -> None:
        """Run every watched task whose root holds path, unless debounced."""
        clean_path = os.path.normpath(path)
        now = time.monotonic()
        for root, task in list(self._roots.items()):
            if not path_within_root(clean_path, root):
                continue
            if not self._should_trigger(task.id, now):
                continue
            self._last_triggered[task.id] = now
            self._log("watcher trigger task_id=%s path=%s", task.id, clean_path)
            try:
                self._tasks.execute_running_task(task.id)
            except Exception:
                pass