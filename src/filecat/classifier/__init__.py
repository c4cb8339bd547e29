"""File-name classification.

Public API:
    - ClassifierAdapter: thread-safe classify/train facade over the current model
    - TokenModel: immutable naive Bayes model over file-name tokens
    - Prediction: predicted category with confidence
    - ModelRepository: versioned on-disk model storage
    - TrainingDataLog: append-only log of confirmed samples
    - TrainModelResult: training run report
"""

from __future__ import annotations

from .adapter import ClassifierAdapter, TrainModelResult
from .model import Prediction, TokenModel
from .repository import ModelRepository
from .training_data import TrainingDataLog

__all__ = [
    "ClassifierAdapter",
    "ModelRepository",
    "Prediction",
    "TokenModel",
    "TrainModelResult",
    "TrainingDataLog",
]
