"""Client-side state management for the filecat API.

Public API:
- ``Store``: queued dispatcher running reducers, cache invalidation, subscribers and effects
- ``FileState`` and the selectors ``filtered_files``, ``files_to_move``, ``has_pending_operations``
- ``ClientCache`` with ``CachePolicy``, ``CachePriority`` and ``CacheInvalidationStrategy``
- ``ApiClient``: REST client with retry and backoff
- ``FileEffects``: cache-first loaders and mutation effects
- ``PushListener`` / ``PushEventAdapter``: server push to store actions
- ``build_store``: wire all of the above from :class:`~filecat.config.ClientSettings`
"""

from __future__ import annotations

from concurrent.futures import Executor

from ..config import ClientSettings
from . import actions
from .api import ApiClient
from .cache import CacheInvalidationStrategy, CachePolicy, CachePriority, CacheStatistics, ClientCache
from .effects import FileEffects
from .push import PushEventAdapter, PushListener
from .state import FileState, files_to_move, filtered_files, has_pending_operations
from .store import Store


def build_store(
    settings: ClientSettings,
    *,
    api: ApiClient | None = None,
    effect_executor: Executor | None = None,
) -> Store:
    """Create a store with a cache sized from ``settings`` and the API effects registered."""
    cache = ClientCache(settings.cache_capacity)
    store = Store(cache=cache, effect_executor=effect_executor)
    FileEffects(api or ApiClient(settings), cache).register(store)
    return store


__all__ = [
    "ApiClient",
    "CacheInvalidationStrategy",
    "CachePolicy",
    "CachePriority",
    "CacheStatistics",
    "ClientCache",
    "FileEffects",
    "FileState",
    "PushEventAdapter",
    "PushListener",
    "Store",
    "actions",
    "build_store",
    "files_to_move",
    "filtered_files",
    "has_pending_operations",
]
