"""Single-writer store for the client state.

Dispatch is queued: actions dispatched while another action is being
processed (from an effect, a subscriber or another thread) are appended to
the queue and handled in order by whichever caller is already draining it.
For every action the store runs the reducer, drops the cache tags the action
makes stale, notifies subscribers and finally runs the registered effects.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import Executor
from typing import Any

from . import actions as a
from .cache import CATEGORIES_TAG, CONFIGS_TAG, FILES_TAG, ClientCache
from .reducers import REDUCERS, ReducerRegistry
from .state import FileState

LOGGER = logging.getLogger(__name__)

Effect = Callable[[a.Action, "Store"], None]
Subscriber = Callable[[FileState, a.Action], None]

# Mutations whose success makes cached reads stale.
INVALIDATION_TAGS: dict[type[a.Action], tuple[str, ...]] = {
    a.UpdateFileDetailSuccess: (FILES_TAG, CATEGORIES_TAG),
    a.NotShowAgainFileSuccess: (FILES_TAG,),
    a.MoveFilesSuccess: (FILES_TAG,),
    a.ForceCategorySuccess: (FILES_TAG,),
    a.RefreshDataSuccess: (FILES_TAG, CATEGORIES_TAG),
    a.UpdateConfigurationSuccess: (CONFIGS_TAG,),
    a.PushFileMoved: (FILES_TAG,),
    a.PushJobCompleted: (FILES_TAG,),
    a.PushCategoryRefreshed: (CATEGORIES_TAG,),
    a.AddNewCategory: (CATEGORIES_TAG,),
}


class Store:
    def __init__(
        self,
        initial_state: FileState | None = None,
        *,
        cache: ClientCache | None = None,
        reducers: ReducerRegistry | None = None,
        effect_executor: Executor | None = None,
    ) -> None:
        self._state = initial_state or FileState()
        self.cache = cache
        self._reducers = reducers or REDUCERS
        self._executor = effect_executor
        self._effects: dict[type[a.Action], list[Effect]] = {}
        self._subscribers: list[Subscriber] = []
        self._queue: deque[a.Action] = deque()
        self._queue_lock = threading.Lock()
        self._draining = False

    @property
    def state(self) -> FileState:
        return self._state

    def select(self, selector: Callable[[FileState], Any]) -> Any:
        return selector(self._state)

    def register_effect(self, action_type: type[a.Action], effect: Effect) -> None:
        self._effects.setdefault(action_type, []).append(effect)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback(state, action)``; returns a function that unsubscribes it."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def dispatch(self, action: a.Action) -> None:
        with self._queue_lock:
            self._queue.append(action)
            if self._draining:
                return
            self._draining = True

        while True:
            with self._queue_lock:
                if not self._queue:
                    self._draining = False
                    return
                current = self._queue.popleft()
            try:
                self._process(current)
            except Exception:
                with self._queue_lock:
                    self._draining = False
                raise

    def _process(self, action: a.Action) -> None:
        self._state = self._reducers.reduce(self._state, action)

        tags = INVALIDATION_TAGS.get(type(action))
        if tags and self.cache is not None:
            self.cache.invalidate_by_tags(*tags)

        for callback in list(self._subscribers):
            try:
                callback(self._state, action)
            except Exception:  # noqa: BLE001
                LOGGER.exception("State subscriber failed for %s", type(action).__name__)

        for effect in self._effects.get(type(action), ()):
            if self._executor is None:
                self._run_effect(effect, action)
            else:
                self._executor.submit(self._run_effect, effect, action)

    def _run_effect(self, effect: Effect, action: a.Action) -> None:
        try:
            effect(action, self)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Effect failed for %s", type(action).__name__)


__all__ = ["Effect", "INVALIDATION_TAGS", "Store", "Subscriber"]
