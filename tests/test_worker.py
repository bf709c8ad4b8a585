"""Tests for the serialized detection worker."""

from __future__ import annotations

import threading
import time

from live_detector.core.exceptions import ModelLoadError, TransformContractError
from live_detector.core.types import BackendConfig, Empty, ModelInputImage, PipelineState
from live_detector.pipeline.dispatcher import ResultDispatcher
from live_detector.pipeline.worker import DetectionWorker

WAIT = 5.0
CPU = BackendConfig(use_gpu=False)
GPU = BackendConfig(use_gpu=True)


class TestLoad:
    """Tests for model loading."""

    def test_initial_state_is_uninitialized(self, worker: DetectionWorker) -> None:
        """Worker should start without a detector."""
        assert worker.state is PipelineState.UNINITIALIZED
        assert worker.backend is None
        assert not worker.is_ready

    def test_load_transitions_to_ready(self, worker: DetectionWorker, factory) -> None:
        """Successful load should end in READY on the requested backend."""
        assert worker.load("model.tflite", None, CPU)

        assert worker.flush(WAIT)
        assert worker.state is PipelineState.READY
        assert worker.backend == CPU
        assert factory.log == [("construct", "CPU")]

    def test_state_is_loading_until_load_runs(self, worker: DetectionWorker) -> None:
        """Submitting a load switches to LOADING before it completes."""
        gate = threading.Event()
        worker.analyze(lambda: gate.wait(WAIT))

        worker.load("model.tflite", None, CPU)
        assert worker.state is PipelineState.LOADING

        gate.set()
        assert worker.flush(WAIT)
        assert worker.state is PipelineState.READY

    def test_failed_load_stays_uninitialized(
        self,
        worker: DetectionWorker,
        factory,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """A bad model path reports ModelLoadError and leaves the worker unusable."""
        factory.failing_paths.add("missing.tflite")

        worker.load("missing.tflite", None, CPU)
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.UNINITIALIZED
        dispatcher.drain()
        assert len(presenter.errors) == 1
        assert isinstance(presenter.errors[0], ModelLoadError)

    def test_detect_before_load_is_dropped(
        self,
        worker: DetectionWorker,
        model_image: ModelInputImage,
        dispatcher: ResultDispatcher,
    ) -> None:
        """Detect without a detector produces no dispatch."""
        assert worker.detect(model_image)
        assert worker.flush(WAIT)

        assert dispatcher.drain() == 0


class TestDetect:
    """Tests for detect dispatch."""

    def test_result_is_posted(
        self,
        worker: DetectionWorker,
        model_image: ModelInputImage,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """A detect call should deliver boxes and inference time."""
        worker.load("model.tflite", None, CPU)
        worker.detect(model_image)
        assert worker.flush(WAIT)

        assert dispatcher.drain() == 1
        boxes, inference_time_ms = presenter.results[0]
        assert boxes[0].label == "CPU"
        assert inference_time_ms == 50

    def test_empty_result_clears(
        self,
        worker: DetectionWorker,
        factory,
        model_image: ModelInputImage,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """Empty results reach the presenter as on_clear."""
        factory.empty = True
        worker.load("model.tflite", None, CPU)
        worker.detect(model_image)
        assert worker.flush(WAIT)

        dispatcher.drain()
        assert presenter.clears == 1
        assert presenter.results == []

    def test_detect_queued_behind_load_uses_loaded_model(
        self,
        worker: DetectionWorker,
        model_image: ModelInputImage,
        factory,
    ) -> None:
        """A detect submitted while LOADING runs after the load."""
        worker.load("model.tflite", None, GPU)
        worker.detect(model_image)
        assert worker.flush(WAIT)

        assert factory.log == [("construct", "GPU"), ("detect", "GPU")]

    def test_run_detect_off_worker_thread_is_rejected(
        self,
        worker: DetectionWorker,
        model_image: ModelInputImage,
    ) -> None:
        """Only the worker thread may call into the detector."""
        try:
            worker.run_detect(model_image)
        except RuntimeError:
            pass
        else:
            raise AssertionError("run_detect() should fail off the worker thread")

    def test_operations_run_in_submission_order(self, worker: DetectionWorker) -> None:
        """Tasks execute strictly FIFO on a single thread."""
        order: list[int] = []
        threads: set[str] = set()

        def record(i: int) -> None:
            order.append(i)
            threads.add(threading.current_thread().name)

        for i in range(20):
            worker.analyze(lambda i=i: record(i))
        assert worker.flush(WAIT)

        assert order == list(range(20))
        assert threads == {"detection-worker"}


class TestRestart:
    """Tests for backend hot-swap."""

    def test_restart_waits_for_in_flight_detect(
        self,
        worker: DetectionWorker,
        factory,
        model_image: ModelInputImage,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """In-flight detect sees the old backend, the next one sees the new backend."""
        factory.hold = threading.Event()
        worker.load("model.tflite", None, CPU)
        worker.detect(model_image)
        assert factory_started(factory)

        worker.restart(GPU)
        assert worker.state is PipelineState.RESTARTING

        factory.hold.set()
        worker.detect(model_image)
        assert worker.flush(WAIT)

        assert factory.log == [
            ("construct", "CPU"),
            ("detect", "CPU"),
            ("release", "CPU"),
            ("construct", "GPU"),
            ("detect", "GPU"),
        ]
        assert worker.state is PipelineState.READY
        assert worker.backend == GPU

        dispatcher.drain()
        assert [boxes[0].label for boxes, _ in presenter.results] == ["CPU", "GPU"]

    def test_failed_restart_is_reported_and_recoverable(
        self,
        worker: DetectionWorker,
        factory,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """A failed restart leaves the worker usable for another restart."""
        factory.failing_backends.add(True)
        worker.load("model.tflite", None, CPU)
        worker.restart(GPU)
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.UNINITIALIZED
        assert factory.instances[0].released
        dispatcher.drain()
        assert isinstance(presenter.errors[0], ModelLoadError)

        worker.restart(CPU)
        assert worker.flush(WAIT)
        assert worker.state is PipelineState.READY
        assert worker.backend == CPU

    def test_restart_without_model_reports_error(
        self,
        worker: DetectionWorker,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """Restart needs a prior load to know which model to rebuild."""
        worker.restart(GPU)
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.UNINITIALIZED
        dispatcher.drain()
        assert isinstance(presenter.errors[0], ModelLoadError)

    def test_newer_transition_owns_state(self, worker: DetectionWorker) -> None:
        """A load completing while a restart is queued keeps RESTARTING."""
        gate = threading.Event()
        worker.load("model.tflite", None, CPU)
        worker.analyze(lambda: gate.wait(WAIT))
        worker.restart(GPU)

        assert worker.state is PipelineState.RESTARTING
        gate.set()
        assert worker.flush(WAIT)
        assert worker.state is PipelineState.READY
        assert worker.backend == GPU


class TestClose:
    """Tests for teardown."""

    def test_close_releases_detector(self, worker: DetectionWorker, factory) -> None:
        """Close should release the detector and stop the thread."""
        worker.load("model.tflite", None, CPU)
        worker.close(wait=True, timeout=WAIT)

        assert worker.state is PipelineState.CLOSED
        assert factory.instances[0].released
        assert worker.flush(WAIT)

    def test_operations_after_close_are_noops(
        self,
        worker: DetectionWorker,
        factory,
        model_image: ModelInputImage,
    ) -> None:
        """detect/restart/load after close never raise and do nothing."""
        worker.load("model.tflite", None, CPU)
        worker.close(wait=True, timeout=WAIT)

        assert not worker.detect(model_image)
        assert not worker.restart(GPU)
        assert not worker.load("model.tflite", None, CPU)
        worker.close()

        assert worker.state is PipelineState.CLOSED
        assert factory.log == [("construct", "CPU"), ("release", "CPU")]

    def test_close_queues_behind_in_flight_detect(
        self,
        worker: DetectionWorker,
        factory,
        model_image: ModelInputImage,
        dispatcher: ResultDispatcher,
    ) -> None:
        """Close does not preempt a running detect."""
        factory.hold = threading.Event()
        worker.load("model.tflite", None, CPU)
        worker.detect(model_image)
        assert factory_started(factory)

        worker.close()
        assert worker.state is PipelineState.CLOSED
        assert not factory.instances[0].released

        factory.hold.set()
        assert worker.flush(WAIT)
        assert factory.log[-2:] == [("detect", "CPU"), ("release", "CPU")]
        assert dispatcher.drain() == 1

    def test_context_manager_closes(self, factory, dispatcher: ResultDispatcher) -> None:
        """Leaving the context closes the worker."""
        with DetectionWorker(factory, dispatcher) as worker:
            worker.load("model.tflite", None, CPU)

        assert worker.is_closed
        assert factory.instances[0].released


class TestDetectorFailures:
    """Tests for exceptions raised inside worker tasks."""

    def test_detector_exception_is_recoverable(
        self,
        worker: DetectionWorker,
        factory,
        model_image: ModelInputImage,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """A failing detect drops the detector but a restart brings it back."""
        worker.load("model.tflite", None, CPU)
        assert worker.flush(WAIT)

        def explode(image: ModelInputImage) -> Empty:
            raise RuntimeError("GPU delegate failed on first invoke")

        factory.instances[0].detect = explode
        worker.detect(model_image)
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.UNINITIALIZED
        assert not worker.is_closed
        assert worker.backend is None
        assert factory.instances[0].released
        dispatcher.drain()
        assert isinstance(presenter.errors[-1], RuntimeError)
        assert presenter.results == []

        assert worker.restart(CPU)
        worker.detect(model_image)
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.READY
        assert worker.backend == CPU
        assert factory.log[-2:] == [("construct", "CPU"), ("detect", "CPU")]
        dispatcher.drain()
        assert [boxes[0].label for boxes, _ in presenter.results] == ["CPU"]

    def test_detect_failure_does_not_override_queued_restart(
        self,
        worker: DetectionWorker,
        factory,
        model_image: ModelInputImage,
    ) -> None:
        """A restart submitted during the failing detect still ends in READY."""
        factory.hold = threading.Event()
        worker.load("model.tflite", None, CPU)
        worker.detect(model_image)
        assert factory_started(factory)

        def explode(image: ModelInputImage) -> Empty:
            raise RuntimeError("delegate lost")

        # Applies to the next detect on this instance
        factory.instances[0].detect = explode
        worker.detect(model_image)
        worker.restart(GPU)
        factory.hold.set()
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.READY
        assert worker.backend == GPU

    def test_contract_error_closes_worker(
        self,
        worker: DetectionWorker,
        factory,
        dispatcher: ResultDispatcher,
        presenter,
    ) -> None:
        """A frame contract violation is fatal and reported."""
        worker.load("model.tflite", None, CPU)

        def violate() -> None:
            raise TransformContractError("Buffer holds 7 bytes, expected 48")

        worker.analyze(violate)
        assert worker.flush(WAIT)

        assert worker.state is PipelineState.CLOSED
        assert factory.instances[0].released
        assert not worker.restart(CPU)
        dispatcher.drain()
        assert isinstance(presenter.errors[-1], TransformContractError)


def factory_started(factory) -> bool:
    """Wait until the first detector has entered detect."""
    for _ in range(int(WAIT * 100)):
        if not factory.instances:
            time.sleep(0.01)
        elif factory.instances[0].started.wait(0.01):
            return True
    return False
