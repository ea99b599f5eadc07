"""
Model Lifecycle
===============
Own the loaded model handle and its load / retry / unload state machine::

    UNLOADED --load()--> LOADING --ok--> READY --unload()--> UNLOADED
                            |
                            +--3 failed attempts--> FAILED --reset()--> UNLOADED

Loading is an iterative loop with a fixed backoff between attempts and a
timeout on each attempt.  Concurrent ``load()`` calls share one in-flight
cycle.  Inference borrows the handle through :meth:`borrow`, which gives a
consistent snapshot; ``unload()`` waits for in-flight borrowers to finish.
"""
from __future__ import annotations

import enum
import logging
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from typing import Any

import torch
from torch import nn

from leaf_inference import config
from leaf_inference.engine.executor import output_to_tensor
from leaf_inference.engine.source import LoadedModel, fetch_and_load
from leaf_inference.errors import ClassCountMismatch, ModelLoadFailure
from leaf_inference.knowledge import validate_class_sync


logger = logging.getLogger("leaf_inference.lifecycle")

Fetcher = Callable[[str, str], "LoadedModel | nn.Module"]


class ModelState(str, enum.Enum):
    """Lifecycle states of the model handle."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ModelLifecycleManager:
    """Explicit owner of the model handle.

    Parameters
    ----------
    model_url : str, optional
        Artifact location.  Defaults to ``config.MODEL_URL``.
    class_names : sequence of str, optional
        Class list the model output must match.
    fetcher : callable, optional
        ``fetcher(url, device)`` returning a :class:`LoadedModel` or an
        ``nn.Module``.  Defaults to :func:`fetch_and_load`.
    sleep, clock : callable, optional
        Injected so retry and cool-down behaviour can be tested without
        real waiting.
    """

    def __init__(
        self,
        model_url: str | None = None,
        class_names: tuple[str, ...] | list[str] | None = None,
        input_shape: tuple[int, int, int] | None = None,
        device: str | None = None,
        max_load_attempts: int | None = None,
        backoff_s: float | None = None,
        attempt_timeout_s: float | None = None,
        retry_cooldown_s: float | None = None,
        fetcher: Fetcher | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.model_url = model_url or config.MODEL_URL
        self.class_names = tuple(class_names or config.get_class_names())
        self.input_shape = tuple(input_shape or config.INPUT_SHAPE)
        self.device = device or config.DEVICE
        self.max_load_attempts = max_load_attempts or config.MAX_LOAD_ATTEMPTS
        self.backoff_s = config.LOAD_BACKOFF_S if backoff_s is None else backoff_s
        self.attempt_timeout_s = attempt_timeout_s or config.LOAD_TIMEOUT_S
        self.retry_cooldown_s = (
            config.RETRY_COOLDOWN_S if retry_cooldown_s is None else retry_cooldown_s
        )
        self._fetcher = fetcher or fetch_and_load
        self._sleep = sleep
        self._clock = clock

        self._cond = threading.Condition(threading.Lock())
        self._state = ModelState.UNLOADED
        self._handle: nn.Module | None = None
        self._load_attempts = 0
        self._last_error: str | None = None
        self._failed_at: float | None = None
        self._fatal_error: ClassCountMismatch | None = None
        self._inflight: Future[bool] | None = None
        self._borrowers = 0
        self._draining = False

    # ── State queries ───────────────────────────────────────────────────

    @property
    def state(self) -> ModelState:
        with self._cond:
            return self._state

    @property
    def load_attempts(self) -> int:
        with self._cond:
            return self._load_attempts

    @property
    def fatal_error(self) -> ClassCountMismatch | None:
        """Configuration-integrity error raised by the last load, if any."""
        with self._cond:
            return self._fatal_error

    def is_ready(self) -> bool:
        with self._cond:
            return self._state is ModelState.READY and self._handle is not None

    def info(self) -> dict[str, Any]:
        """Diagnostics snapshot for status endpoints and logs."""
        with self._cond:
            return {
                "state": self._state.value,
                "loaded": self._state is ModelState.READY and self._handle is not None,
                "load_attempts": self._load_attempts,
                "max_load_attempts": self.max_load_attempts,
                "model_url": self.model_url,
                "device": self.device,
                "input_shape": list(self.input_shape),
                "num_classes": len(self.class_names),
                "last_error": self._last_error,
                "active_inferences": self._borrowers,
            }

    # ── Loading ─────────────────────────────────────────────────────────

    def _begin_flight_locked(self) -> tuple[Future[bool], bool]:
        """Join the in-flight cycle or open a new one.  Caller holds the lock."""
        if self._inflight is not None:
            return self._inflight, False
        flight: Future[bool] = Future()
        self._inflight = flight
        self._state = ModelState.LOADING
        self._load_attempts = 0
        self._fatal_error = None
        return flight, True

    def load(self) -> bool:
        """
        Fetch and initialise the model, retrying up to ``max_load_attempts``.

        Returns
        -------
        bool
            ``True`` when the model is READY, ``False`` once every attempt
            has failed (state FAILED).

        Raises
        ------
        ClassCountMismatch
            If the artifact's output does not match the class list.  This is
            never retried.
        """
        with self._cond:
            if self._state is ModelState.READY and self._handle is not None:
                return True
            flight, owner = self._begin_flight_locked()

        if not owner:
            logger.debug("Joining in-flight model load")
            return flight.result()
        return self._run_flight(flight)

    def request_load(self) -> bool:
        """
        Schedule a background load cycle without blocking.

        A cycle starts when the model was never loaded (or was unloaded),
        or when the last cycle FAILED and ``retry_cooldown_s`` has passed.

        Returns
        -------
        bool
            Whether a new cycle was started.
        """
        with self._cond:
            if self._inflight is not None or self._fatal_error is not None:
                return False
            if self._state is ModelState.FAILED:
                elapsed = self._clock() - (self._failed_at or 0.0)
                if elapsed < self.retry_cooldown_s:
                    return False
                logger.info("Retry cool-down elapsed (%.0fs); scheduling model reload", elapsed)
            elif self._state is not ModelState.UNLOADED:
                return False
            flight, _ = self._begin_flight_locked()

        thread = threading.Thread(
            target=self._run_background,
            args=(flight,),
            name="model-load",
            daemon=True,
        )
        thread.start()
        return True

    def _run_background(self, flight: Future[bool]) -> None:
        try:
            self._run_flight(flight)
        except ClassCountMismatch:
            # Already recorded as fatal_error and logged; nobody awaits this thread
            pass

    def _run_flight(self, flight: Future[bool]) -> bool:
        try:
            ok = self._attempt_loop()
        except BaseException as exc:
            flight.set_exception(exc)
            raise
        else:
            flight.set_result(ok)
            return ok
        finally:
            with self._cond:
                self._inflight = None

    def _attempt_loop(self) -> bool:
        for attempt in range(1, self.max_load_attempts + 1):
            with self._cond:
                self._load_attempts = attempt
            logger.info(
                "Loading model (attempt %d/%d) from %s …",
                attempt,
                self.max_load_attempts,
                self.model_url,
            )
            try:
                handle = self._load_once()
            except ClassCountMismatch as exc:
                logger.critical("Model/class-list drift, refusing to serve model: %s", exc)
                with self._cond:
                    self._state = ModelState.FAILED
                    self._failed_at = self._clock()
                    self._last_error = str(exc)
                    self._fatal_error = exc
                raise
            except ModelLoadFailure as exc:
                logger.warning("✗ Model load attempt %d failed: %s", attempt, exc)
                with self._cond:
                    self._last_error = str(exc)
                if attempt < self.max_load_attempts:
                    logger.info("Retrying model load in %.1fs", self.backoff_s)
                    self._sleep(self.backoff_s)
                continue

            with self._cond:
                self._handle = handle
                self._state = ModelState.READY
                self._last_error = None
                self._failed_at = None
            logger.info(
                "✓ Model ready on %s (input %s, %d classes)",
                self.device,
                list(self.input_shape),
                len(self.class_names),
            )
            return True

        with self._cond:
            self._state = ModelState.FAILED
            self._failed_at = self._clock()
        logger.error(
            "Model unavailable after %d attempts; serving fallback predictions",
            self.max_load_attempts,
        )
        return False

    def _load_once(self) -> nn.Module:
        """One bounded attempt: fetch, initialise and verify the artifact."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-fetch")
        future = executor.submit(self._fetch_and_verify)
        executor.shutdown(wait=False)
        try:
            return future.result(timeout=self.attempt_timeout_s)
        except FutureTimeoutError as exc:
            future.cancel()
            raise ModelLoadFailure(
                f"Model load timed out after {self.attempt_timeout_s:g}s"
            ) from exc

    def _fetch_and_verify(self) -> nn.Module:
        try:
            loaded = self._fetcher(self.model_url, self.device)
        except Exception as exc:
            raise ModelLoadFailure(f"{type(exc).__name__}: {exc}") from exc

        if isinstance(loaded, LoadedModel):
            module, artifact_classes = loaded.module, loaded.class_names
        else:
            module, artifact_classes = loaded, None

        if artifact_classes is not None:
            report = validate_class_sync(artifact_classes, self.class_names)
            if not report.is_sync:
                raise ClassCountMismatch(
                    len(self.class_names),
                    len(artifact_classes),
                    detail="; ".join(report.differences),
                )

        num_outputs = self._probe_output_size(module)
        if num_outputs != len(self.class_names):
            raise ClassCountMismatch(len(self.class_names), num_outputs)
        return module

    def _probe_output_size(self, module: nn.Module) -> int:
        """Run one zero batch through the model to read its output width."""
        probe = torch.zeros((1, *self.input_shape), dtype=torch.float32, device=self.device)
        try:
            with torch.inference_mode():
                output = output_to_tensor(module(probe))
                return int(output.numel())
        except Exception as exc:
            raise ModelLoadFailure(f"Probe forward pass failed: {exc}") from exc
        finally:
            del probe

    # ── Borrowing & teardown ────────────────────────────────────────────

    @contextmanager
    def borrow(self) -> Iterator[nn.Module | None]:
        """
        Borrow the model for one inference call.

        Yields ``None`` when the model is not READY (or is being unloaded);
        callers then take the fallback path.
        """
        with self._cond:
            if (
                self._state is ModelState.READY
                and self._handle is not None
                and not self._draining
            ):
                handle: nn.Module | None = self._handle
                self._borrowers += 1
            else:
                handle = None
        try:
            yield handle
        finally:
            if handle is not None:
                with self._cond:
                    self._borrowers -= 1
                    self._cond.notify_all()

    def hold_until(self, pending: Future) -> None:
        """
        Count one more borrower until ``pending`` completes.

        Call from inside :meth:`borrow` when work on the borrowed model
        outlives the ``with`` block (a timed-out forward pass still running
        in a worker thread), so :meth:`unload` keeps waiting for it.
        """
        with self._cond:
            self._borrowers += 1

        def _release(_: Future) -> None:
            with self._cond:
                self._borrowers -= 1
                self._cond.notify_all()

        pending.add_done_callback(_release)

    def unload(self) -> bool:
        """
        Release the model and return to UNLOADED.

        Idempotent: returns ``False`` when there was nothing to release.
        Waits for an in-flight load and for active borrowers first.
        """
        with self._cond:
            flight = self._inflight
        if flight is not None:
            flight.exception()

        with self._cond:
            if self._handle is None:
                return False
            self._draining = True
            self._cond.wait_for(lambda: self._borrowers == 0)
            handle = self._handle
            self._handle = None
            self._state = ModelState.UNLOADED
            self._load_attempts = 0
            self._draining = False

        del handle
        if self.device.startswith("cuda") and torch.cuda.is_available():
            torch.cuda.empty_cache()
        logger.info("Model unloaded")
        return True

    def reset(self) -> bool:
        """Clear a FAILED cycle so the next load starts from scratch."""
        with self._cond:
            if self._state is not ModelState.FAILED:
                return False
            self._state = ModelState.UNLOADED
            self._load_attempts = 0
            self._failed_at = None
            self._fatal_error = None
            self._last_error = None
        logger.info("Model lifecycle reset; next request will trigger a load")
        return True
