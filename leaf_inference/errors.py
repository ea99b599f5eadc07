"""
Error Taxonomy
==============
Exceptions raised by the inference core.

- ``InvalidImageFormat``: the request's bytes cannot become a 3-channel
  image. Surfaced to the caller.
- ``ModelLoadFailure``: one load attempt failed. Retried, then absorbed.
- ``PredictionExecutionFailure``: a forward pass failed. Absorbed into a
  fallback result.
- ``ClassCountMismatch``: model output and class list disagree. Fatal.
"""
from __future__ import annotations

from concurrent.futures import Future


class InferenceError(Exception):
    """Base class for all inference errors."""


class InvalidImageFormat(InferenceError):
    """Image bytes could not be decoded into an ``[H, W, 3]`` pixel buffer."""


class ModelLoadFailure(InferenceError):
    """A single attempt to fetch or initialise the model failed."""


class PredictionExecutionFailure(InferenceError):
    """The forward pass raised, timed out or returned the wrong length.

    ``pending`` is set when the call timed out: the future of the forward
    pass still running on the model.
    """

    def __init__(self, message: str, pending: Future | None = None) -> None:
        super().__init__(message)
        self.pending = pending


class ClassCountMismatch(InferenceError):
    """Model output dimensionality does not match the configured class list."""

    def __init__(self, expected: int, actual: int, detail: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        message = f"Class count mismatch: class list has {expected}, model produced {actual}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
