"""SQLite persistence for tasks, connections, file index, queue and history."""