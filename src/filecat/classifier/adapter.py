"""Thread-safe wrapper around the trained file-name model.

Readers grab the current model reference once and work against that
immutable object, while training builds a brand-new model and publishes it by
swapping the reference. Classification therefore never observes a partially
trained model and is never blocked by a retrain.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

from ..errors import ModelNotTrainedError
from ..logging_utils import render_fields_block
from .model import Prediction, TokenModel
from .repository import ModelRepository

LOGGER = logging.getLogger(__name__)


@dataclass
class TrainModelResult:
    """Outcome of a training run.

    Attributes:
        success: Whether a new model was published
        message: Human-readable summary
        model_version: Version of the published model
        model_path: Where the model was stored
        model_size_bytes: Size of the stored model file
        training_samples: Number of samples used
        training_duration: Wall-clock training time
        metrics: Per-category sample counts and training accuracy
    """

    success: bool
    message: str
    model_version: str | None = None
    model_path: Path | None = None
    model_size_bytes: int = 0
    training_samples: int = 0
    training_duration: timedelta = field(default_factory=timedelta)
    metrics: dict[str, Any] = field(default_factory=dict)


class ClassifierAdapter:
    def __init__(
        self,
        repository: ModelRepository,
        *,
        smoothing: float = 1.0,
        min_confidence: float = 0.0,
    ) -> None:
        self._repository = repository
        self._smoothing = smoothing
        self.min_confidence = min_confidence
        self._model: TokenModel | None = None
        self._train_lock = threading.Lock()

    @property
    def is_trained(self) -> bool:
        return self._model is not None

    @property
    def current_version(self) -> str | None:
        model = self._model
        return model.version if model is not None else None

    def _current_model(self) -> TokenModel:
        model = self._model
        if model is None:
            raise ModelNotTrainedError("No classification model has been trained or loaded")
        return model

    def classify(self, filename: str) -> Prediction:
        """Predict a category for ``filename``.

        Raises:
            ModelNotTrainedError: If no model is available yet
        """
        return self._current_model().predict(filename)

    def classify_many(self, filenames: Sequence[str]) -> list[Prediction]:
        """Classify a batch against a single model snapshot."""
        model = self._current_model()
        return [model.predict(name) for name in filenames]

    def load(self, version: str) -> None:
        """Load a stored model version and make it current."""
        model = self._repository.load(version)
        with self._train_lock:
            self._model = model
        LOGGER.info("Loaded classification model %s (%d categories)", version, len(model.categories))

    def load_latest(self) -> bool:
        versions = self._repository.versions()
        if not versions:
            return False
        self.load(versions[0])
        return True

    def train(self, samples: Iterable[tuple[str, str]]) -> str:
        """Train on ``(filename, category)`` samples and publish the new model.

        Returns:
            The version of the newly published model
        """
        return self._train(list(samples))[0].version

    def train_with_report(self, samples: Iterable[tuple[str, str]]) -> TrainModelResult:
        sample_list = list(samples)
        if not sample_list:
            return TrainModelResult(success=False, message="No training samples available")

        started = time.monotonic()
        try:
            model, path = self._train(sample_list)
        except ValueError as exc:
            return TrainModelResult(success=False, message=str(exc), training_samples=len(sample_list))
        duration = timedelta(seconds=time.monotonic() - started)

        hits = sum(1 for name, category in sample_list if model.predict(name).category == category.strip())
        metrics = {
            "categories": dict(Counter(category.strip() for _, category in sample_list)),
            "training_accuracy": round(hits / len(sample_list), 4),
        }
        size = path.stat().st_size
        LOGGER.info(
            render_fields_block(
                "Classification Model Trained",
                {
                    "Version": model.version,
                    "Samples": len(sample_list),
                    "Categories": len(model.categories),
                    "Accuracy": metrics["training_accuracy"],
                    "Duration": f"{duration.total_seconds():.2f}s",
                },
            )
        )
        return TrainModelResult(
            success=True,
            message=f"Model {model.version} trained on {len(sample_list)} samples",
            model_version=model.version,
            model_path=path,
            model_size_bytes=size,
            training_samples=len(sample_list),
            training_duration=duration,
            metrics=metrics,
        )

    def _train(self, samples: list[tuple[str, str]]) -> tuple[TokenModel, Path]:
        with self._train_lock:
            model = TokenModel.train(samples, smoothing=self._smoothing)
            path = self._repository.save(model)
            self._model = model
        return model, path
