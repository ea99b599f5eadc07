"""
Buffer Scope
============
Scoped ownership for the tensors and arrays allocated while serving one
request.  Everything tracked inside a ``BufferScope`` is released when the
``with`` block exits, on normal return and on exceptions alike.  Buffers
that must outlive the scope are handed over with :meth:`BufferScope.detach`.

A process-wide counter of live tracked buffers backs :func:`memory_info`,
which the health endpoints report.
"""
from __future__ import annotations

import logging
import threading
from types import TracebackType
from typing import Any, TypeVar

import numpy as np
import torch


logger = logging.getLogger("leaf_inference.buffers")

T = TypeVar("T")

_counter_lock = threading.Lock()
_live_buffers = 0
_live_bytes = 0


def _nbytes(buf: Any) -> int:
    if isinstance(buf, torch.Tensor):
        return buf.element_size() * buf.nelement()
    if isinstance(buf, np.ndarray):
        return int(buf.nbytes)
    return 0


def _account(count: int, nbytes: int) -> None:
    global _live_buffers, _live_bytes  # noqa: PLW0603
    with _counter_lock:
        _live_buffers += count
        _live_bytes += nbytes


def memory_info() -> dict[str, int]:
    """Return the number and size of tracked buffers currently alive."""
    with _counter_lock:
        return {"num_buffers": _live_buffers, "num_bytes": _live_bytes}


class BufferScope:
    """Track intermediate buffers and release all of them on exit.

    Usage
    -----
    >>> with BufferScope() as scope:
    ...     a = scope.track(torch.zeros(3))
    ...     b = scope.track(a + 1)
    ...     result = scope.detach(b)
    >>> scope.live
    0
    """

    def __init__(self) -> None:
        self._buffers: dict[int, tuple[Any, int]] = {}
        self._closed = False
        self.released = 0

    @property
    def live(self) -> int:
        """Number of buffers still owned by this scope."""
        return len(self._buffers)

    def track(self, buf: T) -> T:
        """Take ownership of ``buf`` until the scope exits."""
        if self._closed:
            raise RuntimeError("BufferScope is already closed")
        key = id(buf)
        if key not in self._buffers:
            nbytes = _nbytes(buf)
            self._buffers[key] = (buf, nbytes)
            _account(1, nbytes)
        return buf

    def detach(self, buf: T) -> T:
        """Hand ``buf`` over to the caller; the scope no longer releases it."""
        entry = self._buffers.pop(id(buf), None)
        if entry is not None:
            _account(-1, -entry[1])
        return buf

    def release(self) -> None:
        """Drop every owned buffer exactly once."""
        if self._closed:
            return
        count = len(self._buffers)
        nbytes = sum(size for _, size in self._buffers.values())
        self._buffers.clear()
        _account(-count, -nbytes)
        self.released += count
        self._closed = True

    def __enter__(self) -> BufferScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
