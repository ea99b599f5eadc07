"""
Inference Executor
==================
Run one forward pass on a borrowed model and return the flat probability
vector.  The input tensor and every output buffer are released when the
call ends, whatever the outcome.
"""
from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

import torch
from torch import nn

from leaf_inference import config
from leaf_inference.engine.buffers import BufferScope
from leaf_inference.errors import PredictionExecutionFailure


logger = logging.getLogger("leaf_inference.executor")


def output_to_tensor(output: Any) -> torch.Tensor:
    """Reduce a model output (tensor, tuple/list, or dict) to its first tensor."""
    if isinstance(output, torch.Tensor):
        return output
    if isinstance(output, (list, tuple)) and output:
        return output_to_tensor(output[0])
    if isinstance(output, dict) and output:
        return output_to_tensor(next(iter(output.values())))
    raise TypeError(f"Unsupported model output type: {type(output).__name__}")


class InferenceExecutor:
    """Forward-pass runner bound to a class count.

    Parameters
    ----------
    num_classes : int
        Expected length of the output vector.
    timeout_s : float, optional
        Per-call time limit.  ``0`` runs the forward pass inline with no
        limit.  Defaults to ``config.PREDICT_TIMEOUT_S``.
    apply_softmax : bool, optional
        Apply softmax to the raw output.  Defaults to ``config.APPLY_SOFTMAX``.
    """

    def __init__(
        self,
        num_classes: int,
        timeout_s: float | None = None,
        apply_softmax: bool | None = None,
        max_workers: int = 4,
    ) -> None:
        self.num_classes = num_classes
        self.timeout_s = config.PREDICT_TIMEOUT_S if timeout_s is None else timeout_s
        self.apply_softmax = config.APPLY_SOFTMAX if apply_softmax is None else apply_softmax
        self._pool: ThreadPoolExecutor | None = None
        if self.timeout_s > 0:
            self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="inference")

    def execute(self, model: nn.Module, tensor: torch.Tensor) -> list[float]:
        """
        Run ``model`` on ``tensor``.

        Ownership of ``tensor`` passes to this call; it is released before
        returning.

        Raises
        ------
        PredictionExecutionFailure
            If the model raises, exceeds the time limit, or returns a vector
            whose length is not ``num_classes``.
        """
        start = time.perf_counter()
        with BufferScope() as scope:
            scope.track(tensor)
            if self._pool is None:
                vector = self._forward(model, tensor, scope)
            else:
                future = self._pool.submit(self._forward, model, tensor, scope)
                try:
                    vector = future.result(timeout=self.timeout_s)
                except FutureTimeoutError as exc:
                    future.cancel()
                    raise PredictionExecutionFailure(
                        f"Inference timed out after {self.timeout_s:g}s",
                        pending=None if future.done() else future,
                    ) from exc
        del tensor

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("Forward pass finished in %.1f ms", elapsed_ms)

        if len(vector) != self.num_classes:
            raise PredictionExecutionFailure(
                f"Model returned {len(vector)} values, expected {self.num_classes}"
            )
        if not all(math.isfinite(v) for v in vector):
            raise PredictionExecutionFailure("Model returned non-finite values")
        return vector

    def _forward(self, model: nn.Module, tensor: torch.Tensor, scope: BufferScope) -> list[float]:
        try:
            with torch.inference_mode():
                output = scope.track(output_to_tensor(model(tensor)))
                flat = scope.track(output.detach().to("cpu", torch.float32).flatten())
                if self.apply_softmax:
                    flat = scope.track(torch.softmax(flat, dim=0))
                return flat.tolist()
        except Exception as exc:
            logger.warning("Forward pass failed: %s", exc)
            raise PredictionExecutionFailure(f"{type(exc).__name__}: {exc}") from exc

    def shutdown(self) -> None:
        """Stop the worker pool used for time-limited calls."""
        if self._pool is not None:
            self._pool.shutdown(wait=False)
            self._pool = None
