"""Persistence layer for tracked files and configuration entries.

This package provides SQLite-backed storage for the file registry and the
environment-scoped configuration table.

Public API:
- FileRegistry: SQLite-backed registry of FileRecord rows
- ConfigStore: SQLite-backed key/value store scoped to an environment

Example:
    from filecat.persistence import FileRegistry

    registry = FileRegistry(Path("/data/filecat.db"))
    record = registry.upsert("/in/movie.mkv", 1024, datetime.now())
"""

from .config_store import ConfigStore
from .file_store import FileRegistry

__all__ = [
    "ConfigStore",
    "FileRegistry",
]
