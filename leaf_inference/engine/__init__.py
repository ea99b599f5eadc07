"""Inference engine package."""
from __future__ import annotations

from leaf_inference.engine import (
    aggregator,
    buffers,
    executor,
    fallback,
    lifecycle,
    preprocess,
    service,
    source,
)


__all__ = [
    "aggregator",
    "buffers",
    "executor",
    "fallback",
    "lifecycle",
    "preprocess",
    "service",
    "source",
]
