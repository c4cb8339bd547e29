from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..contracts import BatchJobDTO, ConfigEntryDTO, FileRecordDTO
from ..models import FileFilter
from .cache import CacheStatistics

MAX_CONSOLE_MESSAGES = 500
MAX_TRACKED_JOBS = 50


@dataclass(frozen=True)
class FileState:
    """Immutable snapshot of everything the client displays.

    Reducers never mutate a state; they return a new one built with
    :func:`dataclasses.replace`.
    """

    files: tuple[FileRecordDTO, ...] = ()
    categories: tuple[str, ...] = ()
    configurations: tuple[ConfigEntryDTO, ...] = ()
    jobs: tuple[BatchJobDTO, ...] = ()
    is_loading: bool = False
    is_refreshing: bool = False
    is_training: bool = False
    error: str | None = None
    search_parameter: int = int(FileFilter.TO_CATEGORIZE)
    selected_category: str | None = None
    console_messages: tuple[str, ...] = ()
    scheduled_ids: frozenset[int] = frozenset()
    # Records as they were before an optimistic "not show again", with whether they were scheduled.
    pending_exclusions: tuple[tuple[FileRecordDTO, bool], ...] = ()
    cache_statistics: CacheStatistics = CacheStatistics()
    is_cache_warming: bool = False
    last_cache_update: datetime | None = None
    connection_id: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.connection_id is not None


def filtered_files(state: FileState) -> tuple[FileRecordDTO, ...]:
    """Files matching the current search parameter."""
    if state.search_parameter == FileFilter.CATEGORIZED:
        return tuple(item for item in state.files if not item.needs_categorization)
    if state.search_parameter == FileFilter.TO_CATEGORIZE:
        return tuple(item for item in state.files if item.needs_categorization)
    if state.search_parameter == FileFilter.NEW:
        return tuple(item for item in state.files if item.is_new)
    return state.files


def files_to_move(state: FileState) -> tuple[FileRecordDTO, ...]:
    """Scheduled files that have a category and are not excluded from moves."""
    return tuple(
        item
        for item in state.files
        if item.id in state.scheduled_ids and item.category and not item.exclude_from_move
    )


def has_pending_operations(state: FileState) -> bool:
    return state.is_loading or state.is_refreshing or state.is_training


def find_job(state: FileState, job_id: str) -> BatchJobDTO | None:
    for job in state.jobs:
        if job.job_id == job_id:
            return job
    return None


__all__ = [
    "FileState",
    "filtered_files",
    "files_to_move",
    "find_job",
    "has_pending_operations",
]
