from __future__ import annotations

import fnmatch
import logging
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from queue import Empty, Queue

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import WatcherSettings

LOGGER = logging.getLogger(__name__)


class _FileChangeHandler(FileSystemEventHandler):
    def __init__(self, queue: Queue[Path], include: Sequence[str], ignore: Sequence[str]) -> None:
        self._queue = queue
        self._include = list(include)
        self._ignore = list(ignore)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._emit(Path(str(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._emit(Path(str(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._emit(Path(str(event.dest_path)))

    def _emit(self, path: Path) -> None:
        if self.matches(path):
            self._queue.put(path)

    def matches(self, path: Path) -> bool:
        filename = path.name
        if filename.startswith("."):
            return False
        if self._include and not any(fnmatch.fnmatch(filename, pattern) for pattern in self._include):
            return False
        return not any(fnmatch.fnmatch(filename, pattern) for pattern in self._ignore)


class FileWatcherLoop:
    """Watches the origin directory and triggers a refresh once changes settle.

    ``trigger`` is called with no arguments (typically submitting a Refresh
    job). Changes are debounced by ``debounce_seconds``; with a positive
    ``reconcile_interval`` a refresh is also triggered periodically.
    """

    def __init__(self, root: Path, trigger: Callable[[], object], settings: WatcherSettings) -> None:
        self._root = root
        self._trigger = trigger
        self._settings = settings
        self._queue: Queue[Path] = Queue()
        self._handler = _FileChangeHandler(self._queue, settings.include, settings.ignore)
        self._observer = Observer()
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        # The origin directory is flat; only top-level files are tracked.
        self._observer.schedule(self._handler, str(self._root), recursive=False)
        self._observer.start()
        LOGGER.info("Filesystem watcher monitoring: %s", self._root)

        pending: set[Path] = set()
        last_change = 0.0
        reconcile_interval = self._settings.reconcile_interval
        next_reconcile = time.monotonic() + reconcile_interval if reconcile_interval > 0 else None

        try:
            while not self._stop.is_set():
                try:
                    pending.add(self._queue.get(timeout=1.0))
                    last_change = time.monotonic()
                    continue
                except Empty:
                    pass

                now = time.monotonic()
                if pending and (now - last_change) >= self._settings.debounce_seconds:
                    LOGGER.debug("Detected %d filesystem change(s); triggering refresh.", len(pending))
                    pending.clear()
                    self._fire()

                if next_reconcile is not None and now >= next_reconcile:
                    LOGGER.debug("Filesystem watcher reconcile triggered.")
                    self._fire()
                    next_reconcile = time.monotonic() + reconcile_interval
        finally:
            self._observer.stop()
            self._observer.join(timeout=5)

    def _fire(self) -> None:
        try:
            self._trigger()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Watcher-triggered refresh failed")


__all__ = ["FileWatcherLoop"]
