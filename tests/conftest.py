from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from filecat.classifier import Prediction
from filecat.config import AppConfig, ClassifierSettings, ClientSettings, Settings
from filecat.errors import ModelNotTrainedError
from filecat.persistence import FileRegistry


class StubClassifier:
    """Classifier double returning fixed predictions keyed by file name."""

    def __init__(self, predictions: dict[str, Prediction] | None = None, *, trained: bool = True) -> None:
        self.predictions = predictions or {}
        self.trained = trained
        self.min_confidence = 0.0
        self.calls: list[list[str]] = []

    def classify_many(self, filenames: Sequence[str]) -> list[Prediction]:
        self.calls.append(list(filenames))
        if not self.trained:
            raise ModelNotTrainedError("No classification model has been trained or loaded")
        return [self.predictions.get(name, Prediction("Misc", 0.5)) for name in filenames]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    origin = tmp_path / "inbox"
    origin.mkdir()
    return Settings(
        origin_dir=origin,
        destination_dir=tmp_path / "sorted",
        database_path=tmp_path / "filecat.db",
        categories=["Music", "Video"],
        classifier=ClassifierSettings(
            model_dir=tmp_path / "models",
            training_data=tmp_path / "training" / "training.csv",
        ),
    )


@pytest.fixture
def app_config(settings: Settings) -> AppConfig:
    return AppConfig(settings=settings, client=ClientSettings())


@pytest.fixture
def registry(settings: Settings):
    store = FileRegistry(settings.database_path)
    yield store
    store.close()
