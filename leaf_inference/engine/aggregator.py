"""
Prediction Aggregator
=====================
Turn a probability vector into a ranked, thresholded result.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from leaf_inference import config
from leaf_inference.errors import ClassCountMismatch


logger = logging.getLogger("leaf_inference.aggregator")

LOW_CONFIDENCE_WARNING = "Low confidence. Try better lighting or consult an expert."
TOP_K = 3


@dataclass(frozen=True)
class RankedPrediction:
    """One class with its raw confidence and a display percentage."""

    class_name: str
    confidence: float
    percentage: str

    def to_dict(self) -> dict[str, object]:
        return {
            "class_name": self.class_name,
            "confidence": self.confidence,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class InferenceResult:
    """Outcome of one request, immutable once built."""

    detected_class: str
    confidence: float  # 0-100, one decimal
    top_predictions: tuple[RankedPrediction, ...]
    all_predictions: tuple[RankedPrediction, ...]
    is_high_confidence: bool
    is_fallback: bool = False
    warning: str | None = field(default=None)


def to_percentage(confidence: float) -> str:
    return f"{confidence * 100:.1f}"


def rank(vector: Sequence[float], class_names: Sequence[str]) -> list[RankedPrediction]:
    """
    Pair values with class names by index and sort by confidence, highest
    first.  Ties keep class-list order.
    """
    if len(vector) != len(class_names):
        raise ClassCountMismatch(len(class_names), len(vector))
    paired = [
        RankedPrediction(class_name=name, confidence=float(value), percentage=to_percentage(value))
        for name, value in zip(class_names, vector)
    ]
    return sorted(paired, key=lambda p: -p.confidence)


def aggregate(
    vector: Sequence[float],
    class_names: Sequence[str],
    threshold: float | None = None,
    is_fallback: bool = False,
) -> InferenceResult:
    """
    Build an :class:`InferenceResult` from a raw probability vector.

    Raises
    ------
    ClassCountMismatch
        If ``len(vector) != len(class_names)``.
    """
    threshold = config.CONFIDENCE_THRESHOLD if threshold is None else threshold
    ranked = rank(vector, class_names)
    top = ranked[0]

    is_high_confidence = top.confidence >= threshold
    warning = None if is_high_confidence else LOW_CONFIDENCE_WARNING

    for position, pred in enumerate(ranked[:TOP_K], start=1):
        logger.debug("%d. %s: %s%%", position, pred.class_name, pred.percentage)

    return InferenceResult(
        detected_class=top.class_name,
        confidence=round(top.confidence * 100, 1),
        top_predictions=tuple(ranked[:TOP_K]),
        all_predictions=tuple(ranked),
        is_high_confidence=is_high_confidence,
        is_fallback=is_fallback,
        warning=warning,
    )
