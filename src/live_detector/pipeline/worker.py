"""Serialized execution context for every interaction with the detector.

All operations (model load, analyzer dispatch, detect, backend restart and
teardown) run one at a time on a single dedicated thread, in the order they
were submitted. The detector instance is only ever touched on that thread.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial

from live_detector.core.exceptions import ModelLoadError, TransformContractError
from live_detector.core.logging import get_logger
from live_detector.core.types import (
    BackendConfig,
    DetectionResult,
    ModelInputImage,
    PipelineState,
)
from live_detector.inference.detector import Detector, DetectorFactory
from live_detector.pipeline.dispatcher import ResultDispatcher

logger = get_logger(__name__)

_STOP = object()


@dataclass(frozen=True, slots=True)
class _Unloaded:
    """No detector is available yet, or the last load failed."""


@dataclass(frozen=True, slots=True)
class _Loaded:
    """A detector is constructed for a backend."""

    detector: Detector
    backend: BackendConfig


@dataclass(frozen=True, slots=True)
class _Shutdown:
    """The worker has been closed."""


_Slot = _Unloaded | _Loaded | _Shutdown


@dataclass(frozen=True, slots=True)
class ModelSpec:
    """Model files the detector is built from."""

    model_path: str
    labels_path: str | None


class DetectionWorker:
    """Single-thread owner of the detector collaborator.

    The public ``state`` changes as soon as a load, restart or close is
    submitted and settles when the operation completes on the worker. The
    detector itself lives in a tagged slot that is read only on the worker
    thread, so no detect ever sees a half-released instance.
    """

    def __init__(
        self,
        factory: DetectorFactory,
        dispatcher: ResultDispatcher,
        name: str = "detection-worker",
    ) -> None:
        """Start the worker thread.

        Args:
            factory: Builds a detector for a model and backend
            dispatcher: Receives results and errors for the UI thread
            name: Worker thread name
        """
        self._factory = factory
        self._dispatcher = dispatcher
        self._tasks: queue.SimpleQueue[Callable[[], object] | object] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._state = PipelineState.UNINITIALIZED
        self._generation = 0
        self._closed = False

        # Worker thread only
        self._slot: _Slot = _Unloaded()
        self._model: ModelSpec | None = None
        self._loaded_generation = 0

        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        """Check if frames should be accepted."""
        return self.state is PipelineState.READY

    @property
    def is_closed(self) -> bool:
        """Check if close() has been called."""
        with self._lock:
            return self._closed

    @property
    def backend(self) -> BackendConfig | None:
        """Backend of the currently constructed detector, if any."""
        slot = self._slot
        return slot.backend if isinstance(slot, _Loaded) else None

    @property
    def on_worker_thread(self) -> bool:
        """Check if the caller is running on the worker thread."""
        return threading.current_thread() is self._thread

    def load(self, model_path: str, labels_path: str | None, backend: BackendConfig) -> bool:
        """Construct the detector.

        Args:
            model_path: Model file for the detector
            labels_path: Optional labels file
            backend: Execution backend

        Returns:
            False if the worker is closed and nothing was submitted
        """
        spec = ModelSpec(model_path=model_path, labels_path=labels_path)
        return self._submit_transition(PipelineState.LOADING, partial(self._do_load, spec, backend))

    def restart(self, backend: BackendConfig) -> bool:
        """Rebuild the detector on a different backend.

        Work already submitted runs on the current detector; work submitted
        afterwards runs on the new one.

        Returns:
            False if the worker is closed and nothing was submitted
        """
        return self._submit_transition(PipelineState.RESTARTING, partial(self._do_restart, backend))

    def detect(self, image: ModelInputImage) -> bool:
        """Queue a detect call for an already transformed image.

        Returns:
            False if the worker is closed and nothing was submitted
        """
        return self._submit(partial(self.run_detect, image))

    def analyze(self, task: Callable[[], object]) -> bool:
        """Queue analyzer work (frame transform followed by ``run_detect``).

        Returns:
            False if the worker is closed and nothing was submitted
        """
        return self._submit(task)

    def run_detect(self, image: ModelInputImage) -> DetectionResult | None:
        """Call the detector and post its result. Worker thread only.

        A detector that raises is released and its error posted; the worker
        stays open for a later ``load`` or ``restart``.

        Returns:
            The detection result, or None if no detector is loaded or it failed

        Raises:
            TransformContractError: Passed through to the fatal error path
        """
        if not self.on_worker_thread:
            raise RuntimeError("run_detect() must be called on the detection worker thread")

        slot = self._slot
        if not isinstance(slot, _Loaded):
            return None

        try:
            result = slot.detector.detect(image)
        except TransformContractError:
            raise
        except Exception as e:
            self._report_detect_failure(e)
            return None

        self._dispatcher.post_result(result)
        return result

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until everything submitted so far has run.

        Returns:
            True if the queue drained (or the worker stopped) within timeout
        """
        done = threading.Event()
        if self._submit(done.set):
            return done.wait(timeout)

        if not self.on_worker_thread:
            self._thread.join(timeout)
        return not self._thread.is_alive()

    def close(self, wait: bool = False, timeout: float | None = None) -> None:
        """Release the detector and stop the worker.

        The teardown is queued behind any in-flight call. Later submissions
        are ignored.

        Args:
            wait: Block until the worker thread has exited
            timeout: Maximum seconds to wait when ``wait`` is set
        """
        with self._lock:
            if not self._closed:
                self._closed = True
                self._state = PipelineState.CLOSED
                self._tasks.put(self._do_close)
                self._tasks.put(_STOP)
                logger.info("Detection worker closing")

        if wait and not self.on_worker_thread:
            self._thread.join(timeout)

    def _submit(self, task: Callable[[], object]) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._tasks.put(task)
            return True

    def _submit_transition(
        self,
        state: PipelineState,
        task: Callable[[int], None],
    ) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._generation += 1
            self._state = state
            self._tasks.put(partial(task, self._generation))
            return True

    def _settle(self, generation: int, state: PipelineState) -> None:
        # A newer load/restart or a close owns the public state
        with self._lock:
            if self._closed or generation != self._generation:
                return
            self._state = state

    def _run(self) -> None:
        logger.debug("Detection worker started")

        while True:
            task = self._tasks.get()
            if task is _STOP:
                break

            try:
                task()  # type: ignore[operator]
            except Exception as e:
                self._fail(e)

        logger.debug("Detection worker stopped")

    def _do_load(self, spec: ModelSpec, backend: BackendConfig, generation: int) -> None:
        if isinstance(self._slot, _Shutdown):
            return

        self._release_current()
        self._model = spec
        self._construct(spec, backend, generation)

    def _do_restart(self, backend: BackendConfig, generation: int) -> None:
        if isinstance(self._slot, _Shutdown):
            return

        spec = self._model
        if spec is None:
            self._report_load_failure(
                ModelLoadError("Cannot restart detector before a model has been loaded"),
                generation,
            )
            return

        logger.info("Restarting detector on %s", backend.label)
        self._release_current()
        self._construct(spec, backend, generation)

    def _construct(self, spec: ModelSpec, backend: BackendConfig, generation: int) -> None:
        try:
            detector = self._factory(spec.model_path, spec.labels_path, backend)
        except ModelLoadError as e:
            self._report_load_failure(e, generation)
            return

        self._slot = _Loaded(detector=detector, backend=backend)
        self._loaded_generation = generation
        self._settle(generation, PipelineState.READY)
        logger.info("Detector ready (%s, %s)", spec.model_path, backend.label)

    def _report_load_failure(self, error: ModelLoadError, generation: int) -> None:
        logger.error("Model load failed: %s", error)
        self._slot = _Unloaded()
        self._settle(generation, PipelineState.UNINITIALIZED)
        self._dispatcher.post_error(error)

    def _report_detect_failure(self, error: Exception) -> None:
        # The detector is dropped; a later load or restart rebuilds it
        logger.error("Detector failed during detect: %s", error, exc_info=error)
        self._release_current()
        self._settle(self._loaded_generation, PipelineState.UNINITIALIZED)
        self._dispatcher.post_error(error)

    def _release_current(self) -> None:
        slot = self._slot
        if isinstance(slot, _Loaded):
            self._slot = _Unloaded()
            slot.detector.release()
            logger.debug("Released %s detector", slot.backend.label)

    def _do_close(self) -> None:
        if isinstance(self._slot, _Shutdown):
            return
        self._release_current()
        self._slot = _Shutdown()
        logger.info("Detection worker closed")

    def _fail(self, error: Exception) -> None:
        logger.exception("Fatal error on detection worker: %s", error)
        try:
            self._do_close()
        finally:
            self.close()
            self._dispatcher.post_error(error)

    def __enter__(self) -> DetectionWorker:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close(wait=True)
