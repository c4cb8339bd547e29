"""SQLite-backed registry of tracked files.

The registry is the authoritative view of every file the scanner has seen and
its categorization state. Mutations are atomic per record: a striped lock keyed
by record id serializes writers of the same record while writers of distinct
records proceed concurrently.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from ..errors import NotFoundError, ValidationError
from ..models import FileFilter, FileRecord


def _adapt_datetime(dt: datetime) -> str:
    """Convert datetime to ISO format string for SQLite storage."""
    return dt.isoformat()


def _convert_datetime(data: bytes) -> datetime:
    """Convert ISO format string from SQLite to datetime."""
    return datetime.fromisoformat(data.decode("utf-8"))


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("TIMESTAMP", _convert_datetime)

_FILTER_CLAUSES = {
    FileFilter.ALL: "",
    FileFilter.CATEGORIZED: "AND needs_categorization = 0",
    FileFilter.TO_CATEGORIZE: "AND needs_categorization = 1",
    FileFilter.NEW: "AND is_new = 1",
}

_LOCK_STRIPES = 64


class FileRegistry:
    """SQLite-backed store for :class:`FileRecord` rows.

    Deleted records are tombstoned (``is_deleted = 1``) and never physically
    removed; path uniqueness is enforced only among active records.

    Example:
        registry = FileRegistry(Path("/data/filecat.db"))
        record = registry.upsert("/in/movie.mkv", 1024, datetime.now())
        registry.set_category(record.id, "Video")
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path) -> None:
        """Initialize the registry with the given database path.

        Args:
            db_path: Path to the SQLite database file
        """
        self._db_path = db_path
        self._local = threading.local()
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        self._insert_lock = threading.Lock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection for the current thread."""
        if getattr(self._local, "connection", None) is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(
                self._db_path,
                detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
                timeout=30.0,
            )
            connection.execute("PRAGMA journal_mode=WAL")
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
        return self._local.connection

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        current_version = row["version"] if row else 0
        if current_version < self.SCHEMA_VERSION:
            self._migrate_schema(current_version)

    def _migrate_schema(self, from_version: int) -> None:
        conn = self._get_connection()
        if from_version < 1:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL,
                    name TEXT NOT NULL,
                    size INTEGER NOT NULL DEFAULT 0,
                    modified_at TIMESTAMP NOT NULL,
                    category TEXT,
                    needs_categorization INTEGER NOT NULL DEFAULT 1,
                    is_new INTEGER NOT NULL DEFAULT 1,
                    exclude_from_move INTEGER NOT NULL DEFAULT 0,
                    is_deleted INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    moved_at TIMESTAMP,
                    CHECK (needs_categorization = 1 OR category IS NOT NULL)
                )
            """)
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_files_active_path
                ON files(path) WHERE is_deleted = 0
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_files_category ON files(category)")

        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,))
        conn.commit()

    def close(self) -> None:
        """Close the database connection for the current thread."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None

    def _lock_for(self, file_id: int) -> threading.Lock:
        return self._stripes[file_id % _LOCK_STRIPES]

    def _row_to_record(self, row: sqlite3.Row) -> FileRecord:
        return FileRecord(
            id=row["id"],
            path=row["path"],
            name=row["name"],
            size=row["size"],
            modified_at=row["modified_at"],
            category=row["category"],
            needs_categorization=bool(row["needs_categorization"]),
            is_new=bool(row["is_new"]),
            exclude_from_move=bool(row["exclude_from_move"]),
            is_deleted=bool(row["is_deleted"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            moved_at=row["moved_at"],
        )

    def _fetch_active(self, file_id: int) -> FileRecord | None:
        row = (
            self._get_connection()
            .execute("SELECT * FROM files WHERE id = ? AND is_deleted = 0", (file_id,))
            .fetchone()
        )
        return self._row_to_record(row) if row else None

    def _require_active(self, file_id: int) -> FileRecord:
        record = self._fetch_active(file_id)
        if record is None:
            raise NotFoundError(f"File {file_id} not found")
        return record

    def get(self, file_id: int) -> FileRecord | None:
        """Return the active record with this id, or None."""
        return self._fetch_active(file_id)

    def get_by_path(self, path: str) -> FileRecord | None:
        row = (
            self._get_connection()
            .execute("SELECT * FROM files WHERE path = ? AND is_deleted = 0", (path,))
            .fetchone()
        )
        return self._row_to_record(row) if row else None

    def list_files(self, file_filter: FileFilter = FileFilter.ALL) -> list[FileRecord]:
        """List active records matching ``file_filter`` ordered by id."""
        clause = _FILTER_CLAUSES[FileFilter(file_filter)]
        cursor = self._get_connection().execute(f"SELECT * FROM files WHERE is_deleted = 0 {clause} ORDER BY id")
        return [self._row_to_record(row) for row in cursor]

    def list_by_category(self, category: str) -> list[FileRecord]:
        cursor = self._get_connection().execute(
            "SELECT * FROM files WHERE is_deleted = 0 AND category = ? ORDER BY id",
            (category,),
        )
        return [self._row_to_record(row) for row in cursor]

    def latest_per_category(self) -> list[FileRecord]:
        """Return, per category, the most recently updated active record.

        Ties on ``updated_at`` resolve to the highest id. Results are ordered
        by category name.
        """
        cursor = self._get_connection().execute("""
            SELECT * FROM files
            WHERE is_deleted = 0 AND category IS NOT NULL
            ORDER BY category, updated_at DESC, id DESC
        """)
        latest: dict[str, FileRecord] = {}
        for row in cursor:
            if row["category"] not in latest:
                latest[row["category"]] = self._row_to_record(row)
        return list(latest.values())

    def categories(self) -> list[str]:
        """Distinct categories assigned to active records, sorted."""
        cursor = self._get_connection().execute(
            "SELECT DISTINCT category FROM files WHERE is_deleted = 0 AND category IS NOT NULL ORDER BY category"
        )
        return [row["category"] for row in cursor]

    def pending_moves(self) -> list[FileRecord]:
        """Categorized records that have not been moved or excluded yet."""
        cursor = self._get_connection().execute("""
            SELECT * FROM files
            WHERE is_deleted = 0 AND needs_categorization = 0
              AND exclude_from_move = 0 AND moved_at IS NULL
            ORDER BY id
        """)
        return [self._row_to_record(row) for row in cursor]

    def count(self, file_filter: FileFilter = FileFilter.ALL) -> int:
        clause = _FILTER_CLAUSES[FileFilter(file_filter)]
        row = self._get_connection().execute(f"SELECT COUNT(*) AS count FROM files WHERE is_deleted = 0 {clause}").fetchone()
        return row["count"]

    def upsert(self, path: str, size: int, modified_at: datetime) -> FileRecord:
        """Create a record for a newly discovered path or refresh an existing one.

        An existing active record only has its size and modification time
        refreshed; its category and flags are left untouched.

        Args:
            path: Absolute path of the discovered file
            size: File size in bytes
            modified_at: Filesystem modification time

        Returns:
            The created or refreshed record
        """
        existing = self.get_by_path(path)
        if existing is None:
            with self._insert_lock:
                existing = self.get_by_path(path)
                if existing is None:
                    return self._insert(path, size, modified_at)

        with self._lock_for(existing.id):
            record = self._require_active(existing.id)
            if record.size == size and record.modified_at == modified_at:
                return record
            now = datetime.now()
            conn = self._get_connection()
            conn.execute(
                "UPDATE files SET size = ?, modified_at = ?, updated_at = ? WHERE id = ?",
                (size, modified_at, now, record.id),
            )
            conn.commit()
            record.size = size
            record.modified_at = modified_at
            record.updated_at = now
            return record

    def _insert(self, path: str, size: int, modified_at: datetime) -> FileRecord:
        now = datetime.now()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO files (
                path, name, size, modified_at, category, needs_categorization,
                is_new, exclude_from_move, is_deleted, created_at, updated_at
            ) VALUES (?, ?, ?, ?, NULL, 1, 1, 0, 0, ?, ?)
            """,
            (path, Path(path).name, size, modified_at, now, now),
        )
        conn.commit()
        return self._require_active(cursor.lastrowid)

    def set_category(self, file_id: int, category: str) -> FileRecord:
        """Assign a category and clear ``needs_categorization``.

        Raises:
            NotFoundError: If the id is unknown or soft-deleted
            ValidationError: If the category is blank
        """
        category = (category or "").strip()
        if not category:
            raise ValidationError("'category' must not be empty")
        with self._lock_for(file_id):
            self._require_active(file_id)
            conn = self._get_connection()
            conn.execute(
                "UPDATE files SET category = ?, needs_categorization = 0, updated_at = ? WHERE id = ?",
                (category, datetime.now(), file_id),
            )
            conn.commit()
            return self._require_active(file_id)

    def mark_excluded(self, file_id: int) -> FileRecord:
        """Flag a record as "not show again" so it never appears as a pending move."""
        with self._lock_for(file_id):
            self._require_active(file_id)
            conn = self._get_connection()
            conn.execute(
                "UPDATE files SET exclude_from_move = 1, is_new = 0, updated_at = ? WHERE id = ?",
                (datetime.now(), file_id),
            )
            conn.commit()
            return self._require_active(file_id)

    def record_moved(self, file_id: int, new_path: str, category: str | None = None) -> FileRecord:
        """Record a successful physical move of the file to ``new_path``.

        Raises:
            NotFoundError: If the id is unknown or soft-deleted
            ValidationError: If ``category`` is given but blank
            sqlite3.IntegrityError: If another active record already holds ``new_path``
        """
        if category is not None:
            category = category.strip()
            if not category:
                raise ValidationError("'category' must not be empty")
        with self._lock_for(file_id):
            self._require_active(file_id)
            now = datetime.now()
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    UPDATE files
                    SET path = ?, name = ?, is_new = 0, moved_at = ?, updated_at = ?,
                        category = COALESCE(?, category),
                        needs_categorization = CASE WHEN ? IS NULL THEN needs_categorization ELSE 0 END
                    WHERE id = ?
                    """,
                    (new_path, Path(new_path).name, now, now, category, category, file_id),
                )
            except sqlite3.Error:
                conn.rollback()
                raise
            conn.commit()
            return self._require_active(file_id)

    def soft_delete(self, file_id: int) -> bool:
        """Tombstone a record.

        Returns:
            True if the record was active and is now deleted, False otherwise
        """
        with self._lock_for(file_id):
            conn = self._get_connection()
            cursor = conn.execute(
                "UPDATE files SET is_deleted = 1, updated_at = ? WHERE id = ? AND is_deleted = 0",
                (datetime.now(), file_id),
            )
            conn.commit()
            return cursor.rowcount > 0
