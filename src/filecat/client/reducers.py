"""Pure state transitions for the client store.

Each reducer takes the current :class:`FileState` and an action and returns
the next state. Actions without a registered reducer leave the state alone.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

from ..contracts import BatchJobDTO, FileRecordDTO
from ..models import MoveResult
from . import actions as a
from .state import MAX_CONSOLE_MESSAGES, MAX_TRACKED_JOBS, FileState

Reducer = Callable[[FileState, Any], FileState]


class ReducerRegistry:
    def __init__(self) -> None:
        self._reducers: dict[type[a.Action], Reducer] = {}

    def register(self, action_type: type[a.Action]):
        def decorator(func):
            self._reducers[action_type] = func
            return func

        return decorator

    def __contains__(self, action_type: type[a.Action]) -> bool:
        return action_type in self._reducers

    def reduce(self, state: FileState, action: a.Action) -> FileState:
        reducer = self._reducers.get(type(action))
        if reducer is None:
            return state
        return reducer(state, action)


REDUCERS = ReducerRegistry()
on = REDUCERS.register


def reduce(state: FileState, action: a.Action) -> FileState:
    return REDUCERS.reduce(state, action)


def _console(state: FileState, action: a.Action, message: str) -> tuple[str, ...]:
    line = f"{action.timestamp:%Y-%m-%d %H:%M:%S} - {message}"
    messages = state.console_messages + (line,)
    return messages[-MAX_CONSOLE_MESSAGES:]


def _console_error(state: FileState, action: a.Action, error: str) -> tuple[str, ...]:
    return _console(state, action, f"ERROR: {error}")


def _replace_file(files: tuple[FileRecordDTO, ...], updated: FileRecordDTO) -> tuple[FileRecordDTO, ...]:
    return tuple(updated if item.id == updated.id else item for item in files)


def _upsert_job(jobs: tuple[BatchJobDTO, ...], job: BatchJobDTO) -> tuple[BatchJobDTO, ...]:
    remaining = tuple(item for item in jobs if item.job_id != job.job_id)
    return (remaining + (job,))[-MAX_TRACKED_JOBS:]


# Flags


@on(a.SetLoading)
def _set_loading(state: FileState, action: a.SetLoading) -> FileState:
    return replace(state, is_loading=action.is_loading, error=None if action.is_loading else state.error)


@on(a.SetRefreshing)
def _set_refreshing(state: FileState, action: a.SetRefreshing) -> FileState:
    return replace(state, is_refreshing=action.is_refreshing)


@on(a.SetTraining)
def _set_training(state: FileState, action: a.SetTraining) -> FileState:
    return replace(state, is_training=action.is_training)


@on(a.SetError)
def _set_error(state: FileState, action: a.SetError) -> FileState:
    return replace(state, error=action.error, is_loading=False, is_refreshing=False, is_training=False)


# Files


@on(a.LoadFiles)
def _load_files(state: FileState, action: a.LoadFiles) -> FileState:
    return replace(state, is_loading=True, error=None, search_parameter=action.search_parameter)


@on(a.LoadFilesSuccess)
def _load_files_success(state: FileState, action: a.LoadFilesSuccess) -> FileState:
    present = {item.id for item in action.files}
    return replace(
        state,
        files=tuple(action.files),
        is_loading=False,
        scheduled_ids=frozenset(file_id for file_id in state.scheduled_ids if file_id in present),
    )


@on(a.LoadFilesFailure)
def _load_files_failure(state: FileState, action: a.LoadFilesFailure) -> FileState:
    return replace(state, is_loading=False, error=action.error)


@on(a.RefreshData)
def _refresh_data(state: FileState, action: a.RefreshData) -> FileState:
    return replace(state, is_refreshing=True, error=None)


@on(a.RefreshDataSuccess)
def _refresh_data_success(state: FileState, action: a.RefreshDataSuccess) -> FileState:
    return replace(state, is_refreshing=False, console_messages=_console(state, action, action.message))


@on(a.RefreshDataFailure)
def _refresh_data_failure(state: FileState, action: a.RefreshDataFailure) -> FileState:
    return replace(
        state,
        is_refreshing=False,
        error=action.error,
        console_messages=_console_error(state, action, action.error),
    )


# Categories


@on(a.LoadCategoriesSuccess)
def _load_categories_success(state: FileState, action: a.LoadCategoriesSuccess) -> FileState:
    return replace(state, categories=tuple(action.categories))


@on(a.LoadCategoriesFailure)
def _load_categories_failure(state: FileState, action: a.LoadCategoriesFailure) -> FileState:
    return replace(state, error=action.error)


@on(a.AddNewCategory)
def _add_new_category(state: FileState, action: a.AddNewCategory) -> FileState:
    category = action.category.strip()
    if not category or category in state.categories:
        return state
    return replace(state, categories=tuple(sorted(state.categories + (category,), key=str.lower)))


@on(a.PushCategoryRefreshed)
def _push_category_refreshed(state: FileState, action: a.PushCategoryRefreshed) -> FileState:
    return replace(state, categories=tuple(action.categories))


# Configurations


@on(a.LoadConfigurationsSuccess)
def _load_configurations_success(state: FileState, action: a.LoadConfigurationsSuccess) -> FileState:
    return replace(state, configurations=tuple(action.configurations))


@on(a.LoadConfigurationsFailure)
def _load_configurations_failure(state: FileState, action: a.LoadConfigurationsFailure) -> FileState:
    return replace(state, error=action.error)


@on(a.UpdateConfigurationSuccess)
def _update_configuration_success(state: FileState, action: a.UpdateConfigurationSuccess) -> FileState:
    updated = action.configuration
    configurations = tuple(updated if item.id == updated.id else item for item in state.configurations)
    return replace(
        state,
        configurations=configurations,
        console_messages=_console(state, action, f"Configuration {updated.key} updated"),
    )


@on(a.UpdateConfigurationFailure)
def _update_configuration_failure(state: FileState, action: a.UpdateConfigurationFailure) -> FileState:
    return replace(state, error=action.error, console_messages=_console_error(state, action, action.error))


# File management


@on(a.UpdateFileDetailSuccess)
def _update_file_detail_success(state: FileState, action: a.UpdateFileDetailSuccess) -> FileState:
    updated = action.file
    categories = state.categories
    if updated.category and updated.category not in categories:
        categories = tuple(sorted(categories + (updated.category,), key=str.lower))
    return replace(state, files=_replace_file(state.files, updated), categories=categories)


@on(a.UpdateFileDetailFailure)
def _update_file_detail_failure(state: FileState, action: a.UpdateFileDetailFailure) -> FileState:
    return replace(state, error=action.error, console_messages=_console_error(state, action, action.error))


@on(a.ScheduleFile)
def _schedule_file(state: FileState, action: a.ScheduleFile) -> FileState:
    return replace(state, scheduled_ids=state.scheduled_ids | {action.file_id})


@on(a.RevertFile)
def _revert_file(state: FileState, action: a.RevertFile) -> FileState:
    return replace(state, scheduled_ids=state.scheduled_ids - {action.file_id})


@on(a.NotShowAgainFile)
def _not_show_again(state: FileState, action: a.NotShowAgainFile) -> FileState:
    # Optimistic; the previous copy is restored if the server rejects the change.
    previous = next((item for item in state.files if item.id == action.file_id), None)
    if previous is None:
        return replace(state, scheduled_ids=state.scheduled_ids - {action.file_id})
    updated = previous.model_copy(update={"exclude_from_move": True, "is_new": False})
    pending = tuple(entry for entry in state.pending_exclusions if entry[0].id != action.file_id)
    return replace(
        state,
        files=_replace_file(state.files, updated),
        scheduled_ids=state.scheduled_ids - {action.file_id},
        pending_exclusions=pending + ((previous, action.file_id in state.scheduled_ids),),
    )


@on(a.NotShowAgainFileSuccess)
def _not_show_again_success(state: FileState, action: a.NotShowAgainFileSuccess) -> FileState:
    pending = tuple(entry for entry in state.pending_exclusions if entry[0].id != action.file.id)
    return replace(state, files=_replace_file(state.files, action.file), pending_exclusions=pending)


@on(a.NotShowAgainFileFailure)
def _not_show_again_failure(state: FileState, action: a.NotShowAgainFileFailure) -> FileState:
    state = replace(state, error=action.error, console_messages=_console_error(state, action, action.error))
    for previous, was_scheduled in state.pending_exclusions:
        if previous.id != action.file_id:
            continue
        pending = tuple(entry for entry in state.pending_exclusions if entry[0].id != action.file_id)
        scheduled = state.scheduled_ids | {previous.id} if was_scheduled else state.scheduled_ids
        return replace(
            state,
            files=_replace_file(state.files, previous),
            scheduled_ids=scheduled,
            pending_exclusions=pending,
        )
    return state


# Training and categorization


@on(a.TrainModel)
def _train_model(state: FileState, action: a.TrainModel) -> FileState:
    return replace(state, is_training=True, error=None)


@on(a.TrainModelSuccess)
def _train_model_success(state: FileState, action: a.TrainModelSuccess) -> FileState:
    return replace(state, is_training=False, console_messages=_console(state, action, action.message))


@on(a.TrainModelFailure)
def _train_model_failure(state: FileState, action: a.TrainModelFailure) -> FileState:
    return replace(
        state,
        is_training=False,
        error=action.error,
        console_messages=_console_error(state, action, action.error),
    )


@on(a.ForceCategory)
def _force_category(state: FileState, action: a.ForceCategory) -> FileState:
    return replace(state, is_loading=True, error=None)


@on(a.ForceCategorySuccess)
def _force_category_success(state: FileState, action: a.ForceCategorySuccess) -> FileState:
    return replace(state, is_loading=False, console_messages=_console(state, action, action.message))


@on(a.ForceCategoryFailure)
def _force_category_failure(state: FileState, action: a.ForceCategoryFailure) -> FileState:
    return replace(
        state,
        is_loading=False,
        error=action.error,
        console_messages=_console_error(state, action, action.error),
    )


# Moves


@on(a.MoveFiles)
def _move_files(state: FileState, action: a.MoveFiles) -> FileState:
    return replace(state, is_loading=True, error=None)


@on(a.MoveFilesSuccess)
def _move_files_success(state: FileState, action: a.MoveFilesSuccess) -> FileState:
    return replace(
        state,
        is_loading=False,
        scheduled_ids=frozenset(),
        console_messages=_console(state, action, f"Scheduled move job {action.job_id}"),
    )


@on(a.MoveFilesFailure)
def _move_files_failure(state: FileState, action: a.MoveFilesFailure) -> FileState:
    return replace(
        state,
        is_loading=False,
        error=action.error,
        console_messages=_console_error(state, action, action.error),
    )


# Search and console


@on(a.SetSearchParameter)
def _set_search_parameter(state: FileState, action: a.SetSearchParameter) -> FileState:
    return replace(state, search_parameter=action.search_parameter)


@on(a.SetSelectedCategory)
def _set_selected_category(state: FileState, action: a.SetSelectedCategory) -> FileState:
    return replace(state, selected_category=action.category)


@on(a.AddConsoleMessage)
def _add_console_message(state: FileState, action: a.AddConsoleMessage) -> FileState:
    return replace(state, console_messages=_console(state, action, action.message))


@on(a.ClearConsole)
def _clear_console(state: FileState, action: a.ClearConsole) -> FileState:
    return replace(state, console_messages=())


# Push channel


@on(a.PushConnected)
def _push_connected(state: FileState, action: a.PushConnected) -> FileState:
    return replace(
        state,
        connection_id=action.connection_id,
        console_messages=_console(state, action, f"Connected to notifications ({action.connection_id})"),
    )


@on(a.PushDisconnected)
def _push_disconnected(state: FileState, action: a.PushDisconnected) -> FileState:
    message = "Disconnected from notifications"
    if action.reason:
        message = f"{message}: {action.reason}"
    return replace(state, connection_id=None, console_messages=_console(state, action, message))


@on(a.PushFileMoved)
def _push_file_moved(state: FileState, action: a.PushFileMoved) -> FileState:
    files = state.files
    scheduled = state.scheduled_ids
    if action.result is MoveResult.COMPLETED:
        files = tuple(item for item in files if item.id != action.file_id)
        scheduled = scheduled - {action.file_id}
    return replace(
        state,
        files=files,
        scheduled_ids=scheduled,
        console_messages=_console(state, action, action.result_text),
    )


@on(a.PushJobCompleted)
def _push_job_completed(state: FileState, action: a.PushJobCompleted) -> FileState:
    jobs = state.jobs if action.job is None else _upsert_job(state.jobs, action.job)
    return replace(state, jobs=jobs, console_messages=_console(state, action, action.result_text))


@on(a.PushJobUpdated)
def _push_job_updated(state: FileState, action: a.PushJobUpdated) -> FileState:
    return replace(state, jobs=_upsert_job(state.jobs, action.job))


# Cache bookkeeping


@on(a.CacheWarmup)
def _cache_warmup(state: FileState, action: a.CacheWarmup) -> FileState:
    return replace(state, is_cache_warming=True)


@on(a.CacheWarmupSuccess)
def _cache_warmup_success(state: FileState, action: a.CacheWarmupSuccess) -> FileState:
    return replace(
        state,
        is_cache_warming=False,
        last_cache_update=action.timestamp,
        console_messages=_console(state, action, "Cache warmed up"),
    )


@on(a.CacheWarmupFailure)
def _cache_warmup_failure(state: FileState, action: a.CacheWarmupFailure) -> FileState:
    return replace(
        state,
        is_cache_warming=False,
        error=action.error,
        console_messages=_console_error(state, action, action.error),
    )


@on(a.CacheStatsUpdate)
def _cache_stats_update(state: FileState, action: a.CacheStatsUpdate) -> FileState:
    return replace(state, cache_statistics=action.statistics)


@on(a.CacheSet)
def _cache_set(state: FileState, action: a.CacheSet) -> FileState:
    return replace(state, last_cache_update=action.timestamp)


@on(a.CacheClearSuccess)
def _cache_clear_success(state: FileState, action: a.CacheClearSuccess) -> FileState:
    return replace(state, last_cache_update=action.timestamp, console_messages=_console(state, action, "Cache cleared"))


@on(a.CacheInvalidateSuccess)
def _cache_invalidate_success(state: FileState, action: a.CacheInvalidateSuccess) -> FileState:
    name = action.strategy.name.replace("_", " ").lower()
    return replace(
        state,
        last_cache_update=action.timestamp,
        console_messages=_console(state, action, f"Cache invalidated ({name})"),
    )


@on(a.CacheClearFailure)
@on(a.CacheInvalidateFailure)
def _cache_failure(state: FileState, action: a.CacheClearFailure | a.CacheInvalidateFailure) -> FileState:
    return replace(state, error=action.error, console_messages=_console_error(state, action, action.error))


__all__ = ["REDUCERS", "Reducer", "ReducerRegistry", "reduce"]
