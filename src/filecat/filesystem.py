"""Directory scanning and physical moves used by the batch engine."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .logging_utils import render_fields_block
from .utils import ensure_directory, is_hidden

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredFile:
    path: Path
    size: int
    modified_at: datetime


@dataclass(frozen=True)
class ScanFailure:
    path: Path
    reason: str


@dataclass
class ScanResult:
    files: list[DiscoveredFile]
    failures: list[ScanFailure]


class DirectoryLister:
    """Lists regular, non-hidden files directly inside the watched directory."""

    def __init__(
        self,
        root: Path,
        *,
        extensions: Optional[Iterable[str]] = None,
        include_hidden: bool = False,
    ) -> None:
        self.root = root
        self.extensions = {ext.lower() for ext in (extensions or [])}
        self.include_hidden = include_hidden

    def _accepts(self, path: Path, extensions: set[str]) -> bool:
        if not self.include_hidden and is_hidden(path):
            return False
        if extensions and path.suffix.lower() not in extensions:
            return False
        return True

    def scan(self, extensions: Optional[Iterable[str]] = None) -> ScanResult:
        """Stat every candidate file; unreadable entries become failures.

        ``extensions`` narrows the configured filter for a single scan.
        """
        active = {ext.lower() for ext in extensions} if extensions else self.extensions
        if not self.root.exists():
            LOGGER.warning(render_fields_block("Origin Directory Missing", {"Path": self.root}))
            return ScanResult(files=[], failures=[])

        files: list[DiscoveredFile] = []
        failures: list[ScanFailure] = []
        for path in sorted(self.root.iterdir()):
            if not self._accepts(path, active):
                continue
            try:
                if not path.is_file() or path.is_symlink():
                    continue
                stat = path.stat()
            except OSError as exc:
                failures.append(ScanFailure(path=path, reason=str(exc)))
                continue
            files.append(
                DiscoveredFile(
                    path=path.resolve(),
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime),
                )
            )
        LOGGER.debug("Scanned %s: %d files, %d failures", self.root, len(files), len(failures))
        return ScanResult(files=files, failures=failures)


class MoveError(Exception):
    """Physical move could not be performed."""


class FileMover:
    def move(self, source: Path, destination: Path, *, create_directories: bool = True) -> Path:
        """Move ``source`` to ``destination`` without ever overwriting.

        Raises:
            MoveError: If the source is missing, the target folder is absent and
                may not be created, the destination exists or the OS refuses
        """
        if not source.exists():
            raise MoveError(f"Source file not found: {source}")
        parent = destination.parent
        if not parent.exists():
            if not create_directories:
                raise MoveError(f"Destination directory does not exist: {parent}")
            try:
                ensure_directory(parent)
            except OSError as exc:
                raise MoveError(f"Unable to create {parent}: {exc}") from exc
        if destination.exists():
            raise MoveError(f"Destination already exists: {destination}")
        try:
            shutil.move(str(source), str(destination))
        except OSError as exc:
            raise MoveError(f"Unable to move {source} to {destination}: {exc}") from exc
        return destination


__all__ = [
    "DirectoryLister",
    "DiscoveredFile",
    "FileMover",
    "MoveError",
    "ScanFailure",
    "ScanResult",
]
