"""Actions understood by the client store.

Every action is a frozen dataclass stamped with the time it was created, so
reducers can format console messages without reading the clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..contracts import BatchJobDTO, ConfigEntryDTO, FileRecordDTO
from ..models import MoveResult
from .cache import CacheInvalidationStrategy, CacheStatistics


@dataclass(frozen=True)
class Action:
    timestamp: datetime = field(default_factory=datetime.now, kw_only=True)


# Loading flags
@dataclass(frozen=True)
class SetLoading(Action):
    is_loading: bool


@dataclass(frozen=True)
class SetRefreshing(Action):
    is_refreshing: bool


@dataclass(frozen=True)
class SetTraining(Action):
    is_training: bool


@dataclass(frozen=True)
class SetError(Action):
    error: str | None


# Files
@dataclass(frozen=True)
class LoadFiles(Action):
    search_parameter: int


@dataclass(frozen=True)
class LoadFilesSuccess(Action):
    files: tuple[FileRecordDTO, ...]


@dataclass(frozen=True)
class LoadFilesFailure(Action):
    error: str


@dataclass(frozen=True)
class RefreshData(Action):
    pass


@dataclass(frozen=True)
class RefreshDataSuccess(Action):
    message: str


@dataclass(frozen=True)
class RefreshDataFailure(Action):
    error: str


# Categories
@dataclass(frozen=True)
class LoadCategories(Action):
    pass


@dataclass(frozen=True)
class LoadCategoriesSuccess(Action):
    categories: tuple[str, ...]


@dataclass(frozen=True)
class LoadCategoriesFailure(Action):
    error: str


@dataclass(frozen=True)
class AddNewCategory(Action):
    category: str


# Configurations
@dataclass(frozen=True)
class LoadConfigurations(Action):
    pass


@dataclass(frozen=True)
class LoadConfigurationsSuccess(Action):
    configurations: tuple[ConfigEntryDTO, ...]


@dataclass(frozen=True)
class LoadConfigurationsFailure(Action):
    error: str


@dataclass(frozen=True)
class UpdateConfiguration(Action):
    entry_id: int
    value: str


@dataclass(frozen=True)
class UpdateConfigurationSuccess(Action):
    configuration: ConfigEntryDTO


@dataclass(frozen=True)
class UpdateConfigurationFailure(Action):
    error: str


# File management
@dataclass(frozen=True)
class UpdateFileDetail(Action):
    file_id: int
    category: str


@dataclass(frozen=True)
class UpdateFileDetailSuccess(Action):
    file: FileRecordDTO


@dataclass(frozen=True)
class UpdateFileDetailFailure(Action):
    error: str


@dataclass(frozen=True)
class ScheduleFile(Action):
    file_id: int


@dataclass(frozen=True)
class RevertFile(Action):
    file_id: int


@dataclass(frozen=True)
class NotShowAgainFile(Action):
    file_id: int


@dataclass(frozen=True)
class NotShowAgainFileSuccess(Action):
    file: FileRecordDTO


@dataclass(frozen=True)
class NotShowAgainFileFailure(Action):
    error: str
    file_id: int | None = None


# Model training and categorization
@dataclass(frozen=True)
class TrainModel(Action):
    pass


@dataclass(frozen=True)
class TrainModelSuccess(Action):
    message: str


@dataclass(frozen=True)
class TrainModelFailure(Action):
    error: str


@dataclass(frozen=True)
class ForceCategory(Action):
    force_recategorization: bool = False


@dataclass(frozen=True)
class ForceCategorySuccess(Action):
    message: str


@dataclass(frozen=True)
class ForceCategoryFailure(Action):
    error: str


# Moves
@dataclass(frozen=True)
class MoveFiles(Action):
    files: tuple[FileRecordDTO, ...]
    continue_on_error: bool = True


@dataclass(frozen=True)
class MoveFilesSuccess(Action):
    job_id: str


@dataclass(frozen=True)
class MoveFilesFailure(Action):
    error: str


# Search, filters and console
@dataclass(frozen=True)
class SetSearchParameter(Action):
    search_parameter: int


@dataclass(frozen=True)
class SetSelectedCategory(Action):
    category: str | None


@dataclass(frozen=True)
class AddConsoleMessage(Action):
    message: str


@dataclass(frozen=True)
class ClearConsole(Action):
    pass


# Push channel
@dataclass(frozen=True)
class PushConnected(Action):
    connection_id: str


@dataclass(frozen=True)
class PushDisconnected(Action):
    reason: str | None = None


@dataclass(frozen=True)
class PushFileMoved(Action):
    file_id: int
    result_text: str
    result: MoveResult


@dataclass(frozen=True)
class PushJobCompleted(Action):
    result_text: str
    result: MoveResult
    job: BatchJobDTO | None = None


@dataclass(frozen=True)
class PushJobUpdated(Action):
    job: BatchJobDTO


@dataclass(frozen=True)
class PushCategoryRefreshed(Action):
    categories: tuple[str, ...]


# Cache management
@dataclass(frozen=True)
class CacheClear(Action):
    pass


@dataclass(frozen=True)
class CacheClearSuccess(Action):
    pass


@dataclass(frozen=True)
class CacheClearFailure(Action):
    error: str


@dataclass(frozen=True)
class CacheInvalidate(Action):
    strategy: CacheInvalidationStrategy


@dataclass(frozen=True)
class CacheInvalidateSuccess(Action):
    strategy: CacheInvalidationStrategy


@dataclass(frozen=True)
class CacheInvalidateFailure(Action):
    error: str


@dataclass(frozen=True)
class CacheWarmup(Action):
    pass


@dataclass(frozen=True)
class CacheWarmupSuccess(Action):
    pass


@dataclass(frozen=True)
class CacheWarmupFailure(Action):
    error: str


@dataclass(frozen=True)
class CacheStatsUpdate(Action):
    statistics: CacheStatistics


@dataclass(frozen=True)
class CacheHit(Action):
    key: str
    data_type: str


@dataclass(frozen=True)
class CacheMiss(Action):
    key: str
    data_type: str


@dataclass(frozen=True)
class CacheSet(Action):
    key: str
    data_type: str
    expiration: timedelta | None = None
