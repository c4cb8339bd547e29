from __future__ import annotations

import logging
import threading
from pathlib import Path

from ..utils import ensure_directory

LOGGER = logging.getLogger(__name__)

HEADER = "id;category;name"


class TrainingDataLog:
    """Append-only ``;``-separated log of confirmed (file, category) pairs.

    Every successful move appends one line, so the log grows into the
    training set for the next model.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def append(self, file_id: int, category: str, name: str) -> None:
        line = ";".join(part.replace(";", ",").replace("\n", " ") for part in (str(file_id), category, name))
        with self._lock:
            ensure_directory(self.path.parent)
            write_header = not self.path.exists() or self.path.stat().st_size == 0
            with self.path.open("a", encoding="utf-8") as handle:
                if write_header:
                    handle.write(HEADER + "\n")
                handle.write(line + "\n")

    def read_samples(self) -> list[tuple[str, str]]:
        """Return ``(name, category)`` pairs; malformed lines are skipped."""
        if not self.path.exists():
            return []
        samples: list[tuple[str, str]] = []
        with self._lock, self.path.open("r", encoding="utf-8") as handle:
            for line_number, raw in enumerate(handle, start=1):
                line = raw.strip()
                if not line or (line_number == 1 and line.lower() == HEADER):
                    continue
                parts = line.split(";", 2)
                if len(parts) != 3 or not parts[1].strip() or not parts[2].strip():
                    LOGGER.debug("Skipping malformed training line %d in %s", line_number, self.path)
                    continue
                samples.append((parts[2].strip(), parts[1].strip()))
        return samples
