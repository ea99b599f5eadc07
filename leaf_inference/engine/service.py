"""
Inference Service
=================
Request-level control flow::

    bytes -> preprocess -> [model READY?] -> execute ---------+
                                |                   (fails)   |
                                +--- no ---> fallback <-------+
                                                  |
                                                  v
                                              aggregate

Bad images are reported to the caller.  A missing or failing model never
is: the request is answered from the fallback predictor and the result is
marked ``is_fallback=True``.
"""
from __future__ import annotations

import logging

from leaf_inference import config
from leaf_inference.engine.aggregator import InferenceResult, aggregate
from leaf_inference.engine.executor import InferenceExecutor
from leaf_inference.engine.fallback import FallbackPredictor
from leaf_inference.engine.lifecycle import ModelLifecycleManager
from leaf_inference.engine.preprocess import preprocess
from leaf_inference.errors import PredictionExecutionFailure


logger = logging.getLogger("leaf_inference.service")


class LeafInferenceService:
    """Holds every collaborator needed to answer one prediction request."""

    def __init__(
        self,
        lifecycle: ModelLifecycleManager,
        executor: InferenceExecutor | None = None,
        fallback: FallbackPredictor | None = None,
        threshold: float | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.class_names = lifecycle.class_names
        self.input_shape = lifecycle.input_shape
        self.executor = executor or InferenceExecutor(num_classes=len(self.class_names))
        self.fallback = fallback or FallbackPredictor(self.class_names)
        self.threshold = config.CONFIDENCE_THRESHOLD if threshold is None else threshold

    def predict(self, image_bytes: bytes) -> InferenceResult:
        """
        Classify one image.

        Raises
        ------
        InvalidImageFormat
            If the bytes cannot be decoded into a 3-channel image.
        ClassCountMismatch
            If the model or fallback vector does not match the class list,
            or the last load detected model/config drift.
        """
        fatal = self.lifecycle.fatal_error
        if fatal is not None:
            raise fatal

        tensor = preprocess(image_bytes, self.input_shape)

        vector: list[float] | None = None
        with self.lifecycle.borrow() as model:
            if model is not None:
                try:
                    vector = self.executor.execute(model, tensor)
                except PredictionExecutionFailure as exc:
                    if exc.pending is not None:
                        self.lifecycle.hold_until(exc.pending)
                    logger.warning("Inference failed, answering from fallback: %s", exc)
        del tensor

        if vector is None:
            if not self.lifecycle.is_ready():
                self.lifecycle.request_load()
            vector = self.fallback.fallback(image_bytes)
            result = aggregate(vector, self.class_names, self.threshold, is_fallback=True)
        else:
            result = aggregate(vector, self.class_names, self.threshold)

        logger.info(
            "Prediction: %s (%.1f%%)%s",
            result.detected_class,
            result.confidence,
            " [fallback]" if result.is_fallback else "",
        )
        return result

    def shutdown(self) -> None:
        self.lifecycle.unload()
        self.executor.shutdown()


def build_service() -> LeafInferenceService:
    """Wire a service from ``config``."""
    lifecycle = ModelLifecycleManager()
    return LeafInferenceService(lifecycle)
