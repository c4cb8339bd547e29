"""Core domain types for tracked files and batch jobs."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any


class FileFilter(IntEnum):
    """Listing filters understood by the registry (wire values 1-4)."""

    ALL = 1
    CATEGORIZED = 2
    TO_CATEGORIZE = 3
    NEW = 4


class JobKind(str, Enum):
    REFRESH = "refresh"
    FORCE_CATEGORIZE = "force_categorize"
    MOVE = "move"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIALLY_FAILED = "partially_failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.PARTIALLY_FAILED})


class MoveResult(str, Enum):
    """Outcome reported to clients for a single moved file or a finished job."""

    ID_NOT_PRESENT = "id_not_present"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class FileRecord:
    """One tracked filesystem entry.

    Attributes:
        id: Registry identifier assigned at first discovery
        path: Absolute path of the file
        name: Display name (the file name)
        size: Size in bytes at the last scan
        modified_at: Filesystem modification time at the last scan
        category: Assigned category, None while uncategorized
        needs_categorization: True until a category has been assigned
        is_new: Set on first discovery, cleared once the file is acknowledged
        exclude_from_move: "Not show again" marker; excluded from pending moves
        is_deleted: Soft-delete tombstone
        created_at: When the record was created
        updated_at: When the record was last mutated
        moved_at: When the file was last physically moved, if ever
    """

    id: int
    path: str
    name: str
    size: int
    modified_at: datetime
    category: str | None = None
    needs_categorization: bool = True
    is_new: bool = True
    exclude_from_move: bool = False
    is_deleted: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    moved_at: datetime | None = None


@dataclass
class ConfigEntry:
    """Environment-scoped key/value setting."""

    key: str
    value: str
    environment: str = "prod"
    id: int | None = None


@dataclass
class BatchJob:
    """Progress record for one Refresh, Force-Categorize or Move execution.

    Counters only ever grow and are guarded by a per-job lock, so any snapshot
    satisfies ``processed + failed <= total``. Once the job reaches a terminal
    status every mutator raises ``RuntimeError``.

    Attributes:
        kind: Which batch operation this job runs
        job_id: Opaque identifier handed back to callers
        status: Current state machine status
        created_at: When the job was accepted
        started_at: When a worker picked the job up
        finished_at: When the job reached a terminal status
        total: Number of items the job will attempt
        processed: Items completed successfully
        failed: Items that failed
        skipped: Items never attempted because the job aborted
        errors: Ordered per-item error messages
        metadata: Free-form counters reported by the engine
        note: Human-readable terminal note (e.g. cancellation)
        cancel_requested: Set when a caller asked for cancellation
    """

    kind: JobKind
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    total: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    note: str | None = None
    cancel_requested: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.processed + self.failed) * 100.0 / self.total

    @property
    def estimated_time_remaining(self) -> timedelta | None:
        done = self.processed + self.failed
        if self.started_at is None or done == 0 or self.is_terminal:
            return None
        elapsed = datetime.now() - self.started_at
        remaining = max(self.total - done, 0)
        return elapsed / done * remaining

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None:
            return None
        end = self.finished_at or datetime.now()
        return end - self.started_at

    def _ensure_mutable(self) -> None:
        if self.status.is_terminal:
            raise RuntimeError(f"Job {self.job_id} is already {self.status.value}")

    def mark_running(self) -> None:
        with self._lock:
            self._ensure_mutable()
            self.status = JobStatus.RUNNING
            self.started_at = datetime.now()

    def mark_finished(self, status: JobStatus, note: str | None = None) -> None:
        if not status.is_terminal:
            raise ValueError(f"'{status.value}' is not a terminal status")
        with self._lock:
            self._ensure_mutable()
            self.status = status
            self.finished_at = datetime.now()
            if note:
                self.note = note

    def add_total(self, count: int) -> None:
        if count < 0:
            raise ValueError("'count' must not be negative")
        with self._lock:
            self._ensure_mutable()
            self.total += count

    def record_success(self) -> None:
        with self._lock:
            self._ensure_mutable()
            if self.processed + self.failed >= self.total:
                raise RuntimeError(f"Job {self.job_id} has no unattempted items left")
            self.processed += 1

    def record_failure(self, message: str) -> None:
        with self._lock:
            self._ensure_mutable()
            if self.processed + self.failed >= self.total:
                raise RuntimeError(f"Job {self.job_id} has no unattempted items left")
            self.failed += 1
            self.errors.append(message)

    def record_skipped(self, count: int) -> None:
        with self._lock:
            self._ensure_mutable()
            self.skipped += max(count, 0)

    def set_metadata(self, key: str, value: Any) -> None:
        with self._lock:
            self._ensure_mutable()
            self.metadata[key] = value

    def request_cancel(self) -> bool:
        with self._lock:
            if self.status.is_terminal:
                return False
            self.cancel_requested = True
            return True

    def snapshot(self) -> BatchJob:
        """Return an independent copy safe to hand to other threads."""
        with self._lock:
            return replace(
                self,
                errors=list(self.errors),
                metadata=dict(self.metadata),
                _lock=threading.Lock(),
            )

    def summary(self) -> str:
        """Human-readable one-line outcome used for console notifications."""
        label = self.kind.value.replace("_", " ").title()
        duration = self.duration
        seconds = f"{duration.total_seconds():.1f}s" if duration is not None else "n/a"
        text = (
            f"{label} job {self.status.value.replace('_', ' ')} in {seconds} - "
            f"{self.processed} processed, {self.failed} failed"
        )
        if self.skipped:
            text += f", {self.skipped} skipped"
        if self.note:
            text += f" ({self.note})"
        return text


__all__ = [
    "BatchJob",
    "ConfigEntry",
    "FileFilter",
    "FileRecord",
    "JobKind",
    "JobStatus",
    "MoveResult",
]
