"""Tagged in-memory cache used by the client effects.

Entries expire on an absolute deadline, an idle (sliding) window, or both.
Each entry carries the tags of its policy so a whole family of keys can be
dropped after a mutation.

Every invalidation also bumps a generation counter. A caller that fetches
outside the lock captures :meth:`ClientCache.generation` first and hands it
to :meth:`ClientCache.set`, which then refuses to store a result that an
invalidation overtook while the fetch was in flight.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any, ClassVar

LOGGER = logging.getLogger(__name__)

FILES_TAG = "files"
CATEGORIES_TAG = "categories"
CONFIGS_TAG = "configs"
UI_DATA_TAG = "ui-data"
METADATA_TAG = "metadata"
SETTINGS_TAG = "settings"

CATEGORY_LIST_KEY = "categories:list"
CONFIG_LIST_KEY = "configs:list"


def files_list_key(search_parameter: int) -> str:
    return f"files:list:{int(search_parameter)}"


class CachePriority(IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


class CacheInvalidationStrategy(IntEnum):
    NONE = 0
    ALL = 1
    FILE_DATA = 2
    CATEGORIES = 3
    CONFIGURATIONS = 4
    USER_INTERFACE = 5
    METADATA = 6


INVALIDATION_PATTERNS: dict[CacheInvalidationStrategy, tuple[str, ...]] = {
    CacheInvalidationStrategy.NONE: (),
    CacheInvalidationStrategy.ALL: (".*",),
    CacheInvalidationStrategy.FILE_DATA: ("files:.*", "file-list:.*"),
    CacheInvalidationStrategy.CATEGORIES: ("categories:.*", "category-list"),
    CacheInvalidationStrategy.CONFIGURATIONS: ("configs:.*", "config-list"),
    CacheInvalidationStrategy.USER_INTERFACE: ("ui:.*", "files:.*"),
    CacheInvalidationStrategy.METADATA: ("categories:.*", "configs:.*"),
}


@dataclass(frozen=True)
class CachePolicy:
    """How long an entry lives and which tags it answers to.

    ``refresh_on_hit`` restarts the sliding window whenever the entry is
    read; without it the window counts from the time the entry was stored.
    """

    absolute_expiration: timedelta | None = None
    sliding_expiration: timedelta | None = None
    priority: CachePriority = CachePriority.NORMAL
    tags: frozenset[str] = field(default_factory=frozenset)
    refresh_on_hit: bool = False

    SHORT: ClassVar[CachePolicy]
    MEDIUM: ClassVar[CachePolicy]
    LONG: ClassVar[CachePolicy]
    FILE_LIST: ClassVar[CachePolicy]
    CATEGORIES: ClassVar[CachePolicy]
    CONFIGURATIONS: ClassVar[CachePolicy]


CachePolicy.SHORT = CachePolicy(
    absolute_expiration=timedelta(minutes=5),
    priority=CachePriority.LOW,
    refresh_on_hit=True,
)
CachePolicy.MEDIUM = CachePolicy(
    absolute_expiration=timedelta(minutes=15),
    sliding_expiration=timedelta(minutes=5),
    priority=CachePriority.NORMAL,
    refresh_on_hit=True,
)
CachePolicy.LONG = CachePolicy(
    absolute_expiration=timedelta(hours=1),
    sliding_expiration=timedelta(minutes=15),
    priority=CachePriority.HIGH,
)
CachePolicy.FILE_LIST = CachePolicy(
    absolute_expiration=timedelta(minutes=10),
    sliding_expiration=timedelta(minutes=3),
    priority=CachePriority.HIGH,
    tags=frozenset({FILES_TAG, UI_DATA_TAG}),
    refresh_on_hit=True,
)
CachePolicy.CATEGORIES = CachePolicy(
    absolute_expiration=timedelta(hours=2),
    sliding_expiration=timedelta(minutes=30),
    priority=CachePriority.HIGH,
    tags=frozenset({CATEGORIES_TAG, METADATA_TAG}),
    refresh_on_hit=True,
)
CachePolicy.CONFIGURATIONS = CachePolicy(
    absolute_expiration=timedelta(minutes=30),
    sliding_expiration=timedelta(minutes=10),
    priority=CachePriority.NORMAL,
    tags=frozenset({CONFIGS_TAG, SETTINGS_TAG}),
    refresh_on_hit=True,
)


@dataclass(frozen=True)
class CacheStatistics:
    total_items: int = 0
    hit_count: int = 0
    miss_count: int = 0
    last_updated: datetime | None = None

    @property
    def total_requests(self) -> int:
        return self.hit_count + self.miss_count

    @property
    def hit_ratio(self) -> float:
        total = self.total_requests
        return self.hit_count / total if total else 0.0


@dataclass
class _Entry:
    value: Any
    policy: CachePolicy
    stored_at: float
    last_access: float

    def expired(self, now: float) -> bool:
        policy = self.policy
        if policy.absolute_expiration is not None:
            if now - self.stored_at >= policy.absolute_expiration.total_seconds():
                return True
        if policy.sliding_expiration is not None:
            if now - self.last_access >= policy.sliding_expiration.total_seconds():
                return True
        return False


class ClientCache:
    """Thread-safe key/value cache with tag and pattern invalidation.

    ``capacity`` of ``0`` means unbounded. When full, expired entries go
    first, then the lowest-priority, least recently used entry. Entries with
    :attr:`CachePriority.CRITICAL` are never evicted.
    """

    def __init__(self, capacity: int = 0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._capacity = max(0, int(capacity))
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._tags: dict[str, set[str]] = {}
        self._epoch = 0
        self._tag_generations: dict[str, int] = {}
        self._hits = 0
        self._misses = 0
        self._last_updated: datetime | None = None
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.expired(self._clock())

    def keys(self) -> list[str]:
        with self._lock:
            now = self._clock()
            return sorted(key for key, entry in self._entries.items() if not entry.expired(now))

    def lookup(self, key: str) -> tuple[bool, Any]:
        """Return ``(hit, value)``; counts towards the hit/miss statistics."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and entry.expired(now):
                self._drop(key)
                entry = None
            if entry is None:
                self._misses += 1
                return False, None
            if entry.policy.refresh_on_hit:
                entry.last_access = now
            self._hits += 1
            return True, entry.value

    def get(self, key: str, default: Any = None) -> Any:
        hit, value = self.lookup(key)
        return value if hit else default

    def get_or_fetch(self, key: str, fetch: Callable[[], Any], policy: CachePolicy | None = None) -> Any:
        """Return the cached value, or call ``fetch`` and store what it returns.

        ``None`` results are returned but not stored, and neither is a result
        whose tags were invalidated while ``fetch`` ran.
        """
        hit, value = self.lookup(key)
        if hit:
            return value
        generation = self.generation(*(policy or CachePolicy.MEDIUM).tags)
        value = fetch()
        if value is not None:
            self.set(key, value, policy, generation=generation)
        return value

    def generation(self, *tags: str) -> tuple[int, tuple[int, ...]]:
        """Snapshot of the invalidation counters that cover ``tags``."""
        with self._lock:
            return self._generation_locked(tags)

    def _generation_locked(self, tags) -> tuple[int, tuple[int, ...]]:
        return self._epoch, tuple(self._tag_generations.get(tag, 0) for tag in sorted(tags))

    def set(
        self,
        key: str,
        value: Any,
        policy: CachePolicy | None = None,
        *,
        generation: tuple[int, tuple[int, ...]] | None = None,
    ) -> bool:
        """Store ``value`` under ``key``.

        With ``generation`` (taken from :meth:`generation` before the value
        was fetched) the write is skipped when any of the policy's tags, or
        the whole cache, has been invalidated since.

        Returns:
            Whether the value was stored
        """
        policy = policy or CachePolicy.MEDIUM
        with self._lock:
            if generation is not None and generation != self._generation_locked(policy.tags):
                LOGGER.debug("Discarding stale value for %s; invalidated during fetch", key)
                return False
            now = self._clock()
            if key in self._entries:
                self._drop(key)
            elif self._capacity and len(self._entries) >= self._capacity:
                self._make_room(now)
            self._entries[key] = _Entry(value=value, policy=policy, stored_at=now, last_access=now)
            for tag in policy.tags:
                self._tags.setdefault(tag, set()).add(key)
            self._last_updated = datetime.now()
        return True

    def remove(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._drop(key)
            self._last_updated = datetime.now()
            return True

    def remove_by_pattern(self, pattern: str) -> int:
        """Remove every key matching the regular expression (case-insensitive)."""
        regex = re.compile(pattern, re.IGNORECASE)
        with self._lock:
            self._epoch += 1
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                self._drop(key)
            if doomed:
                self._last_updated = datetime.now()
        if doomed:
            LOGGER.debug("Removed %d cache entries matching %r", len(doomed), pattern)
        return len(doomed)

    def invalidate(self, strategy: CacheInvalidationStrategy) -> int:
        strategy = CacheInvalidationStrategy(strategy)
        if strategy is CacheInvalidationStrategy.ALL:
            return self.clear()
        return sum(self.remove_by_pattern(pattern) for pattern in INVALIDATION_PATTERNS[strategy])

    def invalidate_by_tags(self, *tags: str) -> int:
        with self._lock:
            doomed: set[str] = set()
            for tag in tags:
                self._tag_generations[tag] = self._tag_generations.get(tag, 0) + 1
                doomed.update(self._tags.get(tag, ()))
            for key in doomed:
                self._drop(key)
            if doomed:
                self._last_updated = datetime.now()
        if doomed:
            LOGGER.debug("Invalidated %d cache entries for tags %s", len(doomed), ", ".join(sorted(tags)))
        return len(doomed)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._epoch += 1
            self._entries.clear()
            self._tags.clear()
            self._last_updated = datetime.now()
        return count

    def statistics(self) -> CacheStatistics:
        with self._lock:
            return CacheStatistics(
                total_items=len(self._entries),
                hit_count=self._hits,
                miss_count=self._misses,
                last_updated=self._last_updated,
            )

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag in entry.policy.tags:
            keys = self._tags.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tags[tag]

    def _make_room(self, now: float) -> None:
        for key in [key for key, entry in self._entries.items() if entry.expired(now)]:
            self._drop(key)
        if len(self._entries) < self._capacity:
            return
        candidates = [
            (entry.policy.priority, entry.last_access, key)
            for key, entry in self._entries.items()
            if entry.policy.priority < CachePriority.CRITICAL
        ]
        if not candidates:
            LOGGER.debug("Cache over capacity but every entry is critical")
            return
        _, _, victim = min(candidates)
        LOGGER.debug("Evicting cache entry %s", victim)
        self._drop(victim)


__all__ = [
    "CATEGORIES_TAG",
    "CATEGORY_LIST_KEY",
    "CONFIGS_TAG",
    "CONFIG_LIST_KEY",
    "CachePolicy",
    "CachePriority",
    "CacheInvalidationStrategy",
    "CacheStatistics",
    "ClientCache",
    "FILES_TAG",
    "INVALIDATION_PATTERNS",
    "UI_DATA_TAG",
    "files_list_key",
]
