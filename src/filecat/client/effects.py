"""Side effects that talk to the API and the cache on behalf of the store.

Reads go through the cache first; mutations call the API and report back
with a success or failure action. API failures never escape an effect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..contracts import ForceCategorizeRequest, MoveFileItem, RefreshFilesRequest
from ..errors import FilecatError
from ..models import FileFilter
from . import actions as a
from .api import ApiClient
from .cache import (
    CATEGORIES_TAG,
    CATEGORY_LIST_KEY,
    CONFIG_LIST_KEY,
    FILES_TAG,
    CacheInvalidationStrategy,
    CachePolicy,
    ClientCache,
    files_list_key,
)
from .store import Store

LOGGER = logging.getLogger(__name__)

_FAILURES = (FilecatError, ValueError)


class FileEffects:
    def __init__(self, api: ApiClient, cache: ClientCache) -> None:
        self.api = api
        self.cache = cache

    def register(self, store: Store) -> None:
        handlers: dict[type[a.Action], Callable[[a.Action, Store], None]] = {
            a.LoadFiles: self.load_files,
            a.RefreshData: self.refresh_data,
            a.LoadCategories: self.load_categories,
            a.LoadConfigurations: self.load_configurations,
            a.UpdateConfiguration: self.update_configuration,
            a.UpdateFileDetail: self.update_file_detail,
            a.NotShowAgainFile: self.not_show_again,
            a.TrainModel: self.train_model,
            a.ForceCategory: self.force_category,
            a.MoveFiles: self.move_files,
            a.PushJobCompleted: self.job_completed,
            a.CacheClear: self.cache_clear,
            a.CacheInvalidate: self.cache_invalidate,
            a.CacheWarmup: self.cache_warmup,
        }
        for action_type, handler in handlers.items():
            store.register_effect(action_type, handler)

    # reads

    def load_files(self, action: a.LoadFiles, store: Store) -> None:
        key = files_list_key(action.search_parameter)
        hit, cached = self.cache.lookup(key)
        if hit:
            store.dispatch(a.CacheHit(key=key, data_type="files"))
            store.dispatch(a.LoadFilesSuccess(files=tuple(cached)))
            store.dispatch(a.AddConsoleMessage(message="File list loaded from cache"))
            return

        store.dispatch(a.CacheMiss(key=key, data_type="files"))
        policy = CachePolicy.FILE_LIST
        generation = self.cache.generation(*policy.tags)
        try:
            files = tuple(self.api.get_files(action.search_parameter))
        except _FAILURES as exc:
            store.dispatch(a.LoadFilesFailure(error=str(exc)))
            return
        if self.cache.set(key, files, policy, generation=generation):
            store.dispatch(a.CacheSet(key=key, data_type="files", expiration=policy.absolute_expiration))
        store.dispatch(a.LoadFilesSuccess(files=files))
        store.dispatch(a.AddConsoleMessage(message="File list updated"))

    def load_categories(self, action: a.LoadCategories, store: Store) -> None:
        hit, cached = self.cache.lookup(CATEGORY_LIST_KEY)
        if hit:
            store.dispatch(a.CacheHit(key=CATEGORY_LIST_KEY, data_type="categories"))
            store.dispatch(a.LoadCategoriesSuccess(categories=tuple(cached)))
            return

        store.dispatch(a.CacheMiss(key=CATEGORY_LIST_KEY, data_type="categories"))
        policy = CachePolicy.CATEGORIES
        generation = self.cache.generation(*policy.tags)
        try:
            categories = tuple(self.api.get_categories())
        except _FAILURES as exc:
            store.dispatch(a.LoadCategoriesFailure(error=str(exc)))
            return
        if self.cache.set(CATEGORY_LIST_KEY, categories, policy, generation=generation):
            store.dispatch(
                a.CacheSet(key=CATEGORY_LIST_KEY, data_type="categories", expiration=policy.absolute_expiration)
            )
        store.dispatch(a.LoadCategoriesSuccess(categories=categories))

    def load_configurations(self, action: a.LoadConfigurations, store: Store) -> None:
        hit, cached = self.cache.lookup(CONFIG_LIST_KEY)
        if hit:
            store.dispatch(a.CacheHit(key=CONFIG_LIST_KEY, data_type="configs"))
            store.dispatch(a.LoadConfigurationsSuccess(configurations=tuple(cached)))
            return

        store.dispatch(a.CacheMiss(key=CONFIG_LIST_KEY, data_type="configs"))
        policy = CachePolicy.CONFIGURATIONS
        generation = self.cache.generation(*policy.tags)
        try:
            configurations = tuple(self.api.get_configs())
        except _FAILURES as exc:
            store.dispatch(a.LoadConfigurationsFailure(error=str(exc)))
            return
        if self.cache.set(CONFIG_LIST_KEY, configurations, policy, generation=generation):
            store.dispatch(a.CacheSet(key=CONFIG_LIST_KEY, data_type="configs", expiration=policy.absolute_expiration))
        store.dispatch(a.LoadConfigurationsSuccess(configurations=configurations))

    # mutations

    def refresh_data(self, action: a.RefreshData, store: Store) -> None:
        self.cache.invalidate_by_tags(CATEGORIES_TAG, FILES_TAG)
        try:
            job_id = self.api.refresh_files(RefreshFilesRequest())
        except _FAILURES as exc:
            store.dispatch(a.RefreshDataFailure(error=str(exc)))
            return
        store.dispatch(a.RefreshDataSuccess(message=f"Scheduled refresh job {job_id}"))
        store.dispatch(a.LoadCategories())

    def update_file_detail(self, action: a.UpdateFileDetail, store: Store) -> None:
        try:
            record = self.api.update_file(action.file_id, action.category)
        except _FAILURES as exc:
            store.dispatch(a.UpdateFileDetailFailure(error=str(exc)))
            return
        store.dispatch(a.UpdateFileDetailSuccess(file=record))
        store.dispatch(a.AddConsoleMessage(message=f"Category of {record.name} set to {record.category}"))

    def not_show_again(self, action: a.NotShowAgainFile, store: Store) -> None:
        try:
            record = self.api.not_show_again(action.file_id)
        except _FAILURES as exc:
            store.dispatch(a.NotShowAgainFileFailure(error=str(exc), file_id=action.file_id))
            return
        store.dispatch(a.NotShowAgainFileSuccess(file=record))

    def update_configuration(self, action: a.UpdateConfiguration, store: Store) -> None:
        try:
            entry = self.api.update_config(action.entry_id, action.value)
        except _FAILURES as exc:
            store.dispatch(a.UpdateConfigurationFailure(error=str(exc)))
            return
        store.dispatch(a.UpdateConfigurationSuccess(configuration=entry))

    def train_model(self, action: a.TrainModel, store: Store) -> None:
        try:
            result = self.api.train_model()
        except _FAILURES as exc:
            store.dispatch(a.TrainModelFailure(error=str(exc)))
            return
        if result.success:
            store.dispatch(a.TrainModelSuccess(message=result.message))
        else:
            store.dispatch(a.TrainModelFailure(error=result.message))

    def force_category(self, action: a.ForceCategory, store: Store) -> None:
        request = ForceCategorizeRequest(force_recategorization=action.force_recategorization)
        try:
            job_id = self.api.force_categorize(request)
        except _FAILURES as exc:
            store.dispatch(a.ForceCategoryFailure(error=str(exc)))
            return
        store.dispatch(a.ForceCategorySuccess(message=f"Scheduled categorization job {job_id}"))
        store.dispatch(a.LoadFiles(search_parameter=int(FileFilter.TO_CATEGORIZE)))

    def move_files(self, action: a.MoveFiles, store: Store) -> None:
        try:
            items = [MoveFileItem(id=item.id, category=item.category or "") for item in action.files]
            job_id = self.api.move_files(items, continue_on_error=action.continue_on_error)
        except _FAILURES as exc:
            store.dispatch(a.MoveFilesFailure(error=str(exc)))
            return
        store.dispatch(a.MoveFilesSuccess(job_id=job_id))
        store.dispatch(a.LoadFiles(search_parameter=int(FileFilter.TO_CATEGORIZE)))

    def job_completed(self, action: a.PushJobCompleted, store: Store) -> None:
        store.dispatch(a.LoadFiles(search_parameter=store.state.search_parameter))

    # cache management

    def cache_clear(self, action: a.CacheClear, store: Store) -> None:
        removed = self.cache.clear()
        LOGGER.debug("Cleared %d cache entries", removed)
        store.dispatch(a.CacheClearSuccess())
        store.dispatch(a.CacheStatsUpdate(statistics=self.cache.statistics()))

    def cache_invalidate(self, action: a.CacheInvalidate, store: Store) -> None:
        if action.strategy is CacheInvalidationStrategy.NONE:
            return
        self.cache.invalidate(action.strategy)
        store.dispatch(a.CacheInvalidateSuccess(strategy=action.strategy))
        store.dispatch(a.CacheStatsUpdate(statistics=self.cache.statistics()))

    def cache_warmup(self, action: a.CacheWarmup, store: Store) -> None:
        """Fill the cache up front, then load the state from the warm entries."""
        to_categorize = int(FileFilter.TO_CATEGORIZE)
        try:
            self.cache.get_or_fetch(
                CATEGORY_LIST_KEY, lambda: tuple(self.api.get_categories()), CachePolicy.CATEGORIES
            )
            self.cache.get_or_fetch(
                CONFIG_LIST_KEY, lambda: tuple(self.api.get_configs()), CachePolicy.CONFIGURATIONS
            )
            self.cache.get_or_fetch(
                files_list_key(to_categorize),
                lambda: tuple(self.api.get_files(to_categorize)),
                CachePolicy.FILE_LIST,
            )
        except _FAILURES as exc:
            store.dispatch(a.CacheWarmupFailure(error=str(exc)))
            return
        store.dispatch(a.CacheStatsUpdate(statistics=self.cache.statistics()))
        store.dispatch(a.CacheWarmupSuccess())
        store.dispatch(a.LoadCategories())
        store.dispatch(a.LoadConfigurations())
        store.dispatch(a.LoadFiles(search_parameter=to_categorize))


__all__ = ["FileEffects"]
