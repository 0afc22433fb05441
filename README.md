# fncloudsync

Building blocks for keeping a local directory and a remote directory in step:
the data model of sync tasks, SQLite storage for tasks, connections, a per-task
file index, an operation queue and related records, one-way sync planning from
a local snapshot and a remote listing, file-index bookkeeping after actions, and
a watcher that triggers running tasks when their local folders change.

## Installation

```
pip install fncloudsync
```

For running the test suite:

```
pip install "fncloudsync[test]"
pytest
```

## Modules

- `fncloudsync.domain` – dataclasses `Task`, `Connection`, `RemoteEntry`,
  `FileIndexEntry`, `SyncAction`, `ConflictRecord`, `FailureRecord`,
  `OperationQueueItem`, `TaskEvent`, `TaskRuntimeState`; the enums
  `TaskDirection`, `TaskStatus`, `SyncActionType`; and the errors
  `NotFoundError`, `ConflictError` and `InvalidArgumentError`, all subclasses of
  `DomainError`.
- `fncloudsync.store.db` – `open_database(path)` opens SQLite in autocommit mode
  with WAL journaling and foreign keys on; `migrate(conn)` creates every table
  in one transaction and adds columns missing from older schemas. Timestamps are
  stored as RFC 3339 UTC text (`format_timestamp`, `parse_timestamp`,
  `format_optional_timestamp`, `parse_optional_timestamp`); a missing time is
  `None` in Python and an empty string in the database.
- `fncloudsync.store.tasks`, `.connections`, `.file_index`, `.conflicts`,
  `.events`, `.runtime`, `.failures`, `.operation_queue` – one repository per
  table: `TaskRepository`, `ConnectionRepository`, `FileIndexRepository`,
  `ConflictHistoryRepository`, `TaskEventRepository`, `TaskRuntimeRepository`,
  `FailureRecordRepository`, `OperationQueueRepository`.
- `fncloudsync.syncer.paths` – helpers such as `join_remote_path`,
  `conflict_local_path`, `conflict_remote_path`, `sync_state_for_entry`,
  `file_index_id` and `detect_content_type`.
- `fncloudsync.syncer.planner` – `snapshot_local(root)`, `plan_upload` and
  `plan_download`.
- `fncloudsync.syncer.indexing` – `build_index_entries`, `action_result_entry`,
  `move_result_entries` and `conflict_record_for_action`.
- `fncloudsync.watcher` – `Watcher`, the `Backend` protocol and the
  `WatchdogBackend` implementation.

## Storing state

```python
from fncloudsync.store.db import open_database, migrate
from fncloudsync.store.file_index import FileIndexRepository

db = open_database("cloudsync.db")
migrate(db)
index = FileIndexRepository(db)
entries = index.list_by_task_id("task-1")
```

Lookups of missing rows raise `NotFoundError`; unique or foreign-key violations
raise `ConflictError`. `OperationQueueRepository.enqueue` stores an empty or
`"pending"` status as `"queued"`; `list_due(now, limit)` returns waiting items
whose next attempt is due, highest priority first (64 items when the limit is
zero or less). `TaskEventRepository.list_by_task_id(task_id, limit)` returns the
newest events (100 when the limit is zero or less).

## Planning a one-way sync

```python
from fncloudsync.domain import RemoteEntry, Task
from fncloudsync.syncer.planner import plan_upload, snapshot_local

task = Task(local_path="/data/photos", remote_path="/backup/photos", delete_policy="mirror")
local = snapshot_local(task.local_path)
remote = {"old.jpg": RemoteEntry(path="/backup/photos/old.jpg", exists=True)}
actions = plan_upload(task, local, remote)
```

`snapshot_local` maps slash-separated relative paths to `LocalEntry` records
without following symbolic links. `plan_upload` creates remote directories and
uploads every local file; with `delete_policy="mirror"` it also deletes remote
entries that are missing locally, deepest first. `plan_download` does the same in
the other direction.

After actions have been carried out, `action_result_entry` and
`move_result_entries` give the `FileIndexEntry` values to store, and
`build_index_entries` rebuilds entries for every path seen locally, remotely or
in the previous index, marking paths that disappeared as tombstoned.

## Watching folders

```python
import threading
from fncloudsync.watcher import Watcher

stop = threading.Event()
watcher = Watcher(task_source, refresh_interval=5.0, debounce=2.0)
watcher.run(stop)
```

`task_source` must provide `list()` returning tasks and
`execute_running_task(task_id)`. Only tasks with status running whose direction
is upload or bidirectional are watched; every directory under their local root
is added to the backend, and the set is refreshed each `refresh_interval`
seconds. A task is triggered at most once per `debounce` seconds. `run` blocks
until the event is set.

## What the package does not do

- It does not execute sync actions: there is no client for a remote store and
  nothing that uploads, downloads, moves or deletes files from a plan.
- It builds only one-way plans; there is no bidirectional planner, rename
  detection or conflict resolution between two changed copies.
- It has no command-line program and no server.