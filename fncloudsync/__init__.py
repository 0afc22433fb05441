"""Sync planning, SQLite-backed state and folder watching for local/remote mirroring."""

__version__ = "0.1.0"