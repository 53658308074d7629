"""Top-K decoding of raw class scores into labeled predictions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from efficientnetx.errors import InvalidTopKError, UnsupportedLocaleError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from efficientnetx.ml.labels import LabelVocabulary


@dataclass(frozen=True)
class Prediction:
    """A single labeled class score."""

    label: str
    score: float


def validate_top_k(top_k: object) -> int:
    """Return ``top_k`` as an int, or raise ``InvalidTopKError`` unless it is a positive integer."""
    if isinstance(top_k, bool) or not isinstance(top_k, (int, np.integer)) or top_k <= 0:
        raise InvalidTopKError(f"top_k must be a positive integer, got {top_k!r}")
    return int(top_k)


class ResultDecoder:
    """Ranks raw scores and attaches locale-specific labels."""

    def __init__(self, vocabulary: LabelVocabulary) -> None:
        self._vocabulary = vocabulary

    def decode(self, raw_scores: ArrayLike, top_k: int, locale: str) -> list[Prediction]:
        """Return the ``top_k`` highest-scoring classes as predictions.

        Args:
            raw_scores: Per-class scores; flattened before ranking.
            top_k: Number of predictions wanted. Values above the class count
                are truncated to it.
            locale: Label table to use.

        Returns:
            Predictions sorted by descending score, ties broken by ascending
            class index.

        Raises:
            InvalidTopKError: If ``top_k`` is not a positive integer.
            UnsupportedLocaleError: If ``locale`` has no table, or its table is
                shorter than the score vector.
        """
        top_k = validate_top_k(top_k)

        scores = np.asarray(raw_scores, dtype=np.float32).ravel()
        labels = self._vocabulary.labels_for(locale)
        if len(labels) < scores.size:
            raise UnsupportedLocaleError(
                f"Locale {locale!r} has {len(labels)} labels but the model scores {scores.size} classes"
            )

        # Stable sort on negated scores keeps equal scores in index order.
        order = np.argsort(-scores, kind="stable")[: min(top_k, scores.size)]
        return [Prediction(label=labels[idx], score=float(scores[idx])) for idx in order]
