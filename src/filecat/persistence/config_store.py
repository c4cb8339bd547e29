"""SQLite-backed store for environment-scoped configuration entries."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from ..errors import NotFoundError, ValidationError
from ..models import ConfigEntry


class ConfigStore:
    """Key/value settings scoped to an environment (``dev`` or ``prod``).

    Entries share the registry database file but live in their own table.
    Keys are unique per environment.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path, environment: str = "prod") -> None:
        self._db_path = db_path
        self._environment = environment
        self._local = threading.local()
        self._init_db()

    @property
    def environment(self) -> str:
        return self._environment

    def _get_connection(self) -> sqlite3.Connection:
        if getattr(self._local, "connection", None) is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(self._db_path, timeout=30.0)
            connection.execute("PRAGMA journal_mode=WAL")
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
        return self._local.connection

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS configs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                environment TEXT NOT NULL,
                UNIQUE (key, environment)
            )
        """)
        conn.commit()

    def close(self) -> None:
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None

    def _row_to_entry(self, row: sqlite3.Row) -> ConfigEntry:
        return ConfigEntry(id=row["id"], key=row["key"], value=row["value"], environment=row["environment"])

    def list_entries(self) -> list[ConfigEntry]:
        cursor = self._get_connection().execute(
            "SELECT * FROM configs WHERE environment = ? ORDER BY key",
            (self._environment,),
        )
        return [self._row_to_entry(row) for row in cursor]

    def get(self, entry_id: int) -> ConfigEntry:
        row = (
            self._get_connection()
            .execute("SELECT * FROM configs WHERE id = ? AND environment = ?", (entry_id, self._environment))
            .fetchone()
        )
        if row is None:
            raise NotFoundError(f"Config entry {entry_id} not found")
        return self._row_to_entry(row)

    def get_value(self, key: str, default: str | None = None) -> str | None:
        row = (
            self._get_connection()
            .execute("SELECT value FROM configs WHERE key = ? AND environment = ?", (key, self._environment))
            .fetchone()
        )
        return row["value"] if row else default

    def add(self, key: str, value: str) -> ConfigEntry:
        key = key.strip()
        if not key:
            raise ValidationError("'key' must not be empty")
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO configs (key, value, environment) VALUES (?, ?, ?)",
                (key, value, self._environment),
            )
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise ValidationError(f"Config key '{key}' already exists") from exc
        conn.commit()
        return self.get(cursor.lastrowid)

    def update(self, entry_id: int, value: str) -> ConfigEntry:
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE configs SET value = ? WHERE id = ? AND environment = ?",
            (value, entry_id, self._environment),
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Config entry {entry_id} not found")
        return self.get(entry_id)

    def delete(self, entry_id: int) -> bool:
        conn = self._get_connection()
        cursor = conn.execute(
            "DELETE FROM configs WHERE id = ? AND environment = ?",
            (entry_id, self._environment),
        )
        conn.commit()
        return cursor.rowcount > 0
