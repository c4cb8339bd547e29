from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from ..utils import ensure_directory
from .model import TokenModel

LOGGER = logging.getLogger(__name__)


class ModelRepository:
    """Stores trained models as ``<model_dir>/<version>.json``."""

    def __init__(self, model_dir: Path) -> None:
        self.model_dir = model_dir

    def path_for(self, version: str) -> Path:
        return self.model_dir / f"{version}.json"

    def save(self, model: TokenModel) -> Path:
        ensure_directory(self.model_dir)
        path = self.path_for(model.version)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(model.serialise(), encoding="utf-8")
        os.replace(tmp_path, path)
        LOGGER.debug("Saved model %s to %s", model.version, path)
        return path

    def load(self, version: str) -> TokenModel:
        path = self.path_for(version)
        if not path.exists():
            raise FileNotFoundError(f"No stored model with version '{version}' in {self.model_dir}")
        with path.open("r", encoding="utf-8") as handle:
            return TokenModel.from_dict(json.load(handle))

    def versions(self) -> list[str]:
        """Stored versions, most recently written first."""
        if not self.model_dir.exists():
            return []
        paths = sorted(self.model_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
        return [path.stem for path in paths]
