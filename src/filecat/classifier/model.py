"""Multinomial naive Bayes over file-name tokens."""

from __future__ import annotations

import json
import math
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..utils import filename_tokens, hash_text


@dataclass(frozen=True)
class Prediction:
    category: str
    confidence: float


@dataclass(frozen=True)
class TokenModel:
    """Immutable trained model.

    Attributes:
        smoothing: Laplace smoothing constant used at prediction time
        document_counts: Number of training samples per category
        token_counts: Per-category token frequencies
        vocabulary: Every token seen during training
    """

    smoothing: float
    document_counts: dict[str, int]
    token_counts: dict[str, dict[str, int]]
    vocabulary: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def train(cls, samples: Iterable[tuple[str, str]], *, smoothing: float = 1.0) -> TokenModel:
        document_counts: Counter[str] = Counter()
        token_counts: dict[str, Counter[str]] = defaultdict(Counter)
        for filename, category in samples:
            category = category.strip()
            if not category:
                continue
            document_counts[category] += 1
            token_counts[category].update(filename_tokens(filename))
        if not document_counts:
            raise ValueError("Cannot train a model without labelled samples")
        vocabulary = frozenset(token for counts in token_counts.values() for token in counts)
        return cls(
            smoothing=smoothing,
            document_counts=dict(sorted(document_counts.items())),
            token_counts={category: dict(sorted(token_counts[category].items())) for category in sorted(token_counts)},
            vocabulary=vocabulary,
        )

    @property
    def categories(self) -> list[str]:
        return list(self.document_counts)

    @property
    def sample_count(self) -> int:
        return sum(self.document_counts.values())

    def _log_scores(self, tokens: list[str]) -> dict[str, float]:
        total_docs = self.sample_count
        vocab_size = len(self.vocabulary) or 1
        scores: dict[str, float] = {}
        for category, doc_count in self.document_counts.items():
            counts = self.token_counts.get(category, {})
            denominator = sum(counts.values()) + self.smoothing * vocab_size
            score = math.log(doc_count / total_docs)
            for token in tokens:
                if token not in self.vocabulary:
                    continue
                score += math.log((counts.get(token, 0) + self.smoothing) / denominator)
            scores[category] = score
        return scores

    def predict(self, filename: str) -> Prediction:
        scores = self._log_scores(filename_tokens(filename))
        best = max(sorted(scores), key=lambda category: scores[category])
        peak = scores[best]
        normaliser = sum(math.exp(score - peak) for score in scores.values())
        return Prediction(category=best, confidence=1.0 / normaliser)

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": 1,
            "smoothing": self.smoothing,
            "document_counts": self.document_counts,
            "token_counts": self.token_counts,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TokenModel:
        if payload.get("format") != 1:
            raise ValueError(f"Unsupported model format: {payload.get('format')!r}")
        token_counts = {str(k): {str(t): int(n) for t, n in v.items()} for k, v in payload["token_counts"].items()}
        return cls(
            smoothing=float(payload["smoothing"]),
            document_counts={str(k): int(v) for k, v in payload["document_counts"].items()},
            token_counts=token_counts,
            vocabulary=frozenset(token for counts in token_counts.values() for token in counts),
        )

    def serialise(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @property
    def version(self) -> str:
        """Content hash, so identical samples and settings give the same version."""
        return hash_text(self.serialise())[:12]
