"""Camera session: capture lifecycle and the backpressure gate in front of the worker."""

from __future__ import annotations

import threading
from functools import partial

from live_detector.capture.base import CaptureProvider, PreviewSink, ProviderFactory
from live_detector.capture.permissions import PermissionGate
from live_detector.core.exceptions import BindError
from live_detector.core.logging import get_logger
from live_detector.core.types import (
    AspectRatio,
    BackpressureStrategy,
    CaptureStats,
    Frame,
    PipelineState,
)
from live_detector.pipeline.dispatcher import ResultDispatcher
from live_detector.pipeline.worker import DetectionWorker
from live_detector.vision.transform import FrameTransformer

logger = get_logger(__name__)


class CameraSession:
    """Owns the capture binding and the only entry point for frames.

    Backpressure is keep-only-latest: while one frame is being transformed
    and detected, every other frame is released and dropped on arrival. At
    most one frame is ever in flight and nothing is queued.
    """

    def __init__(
        self,
        provider_factory: ProviderFactory,
        worker: DetectionWorker,
        dispatcher: ResultDispatcher,
        preview: PreviewSink | None = None,
        permission_gate: PermissionGate | None = None,
        aspect_ratio: AspectRatio = AspectRatio.RATIO_4_3,
        transformer: FrameTransformer | None = None,
    ) -> None:
        """Initialize session.

        Args:
            provider_factory: Acquires the capture provider (may block)
            worker: Detection worker frames are dispatched to
            dispatcher: Receives bind errors for the UI thread
            preview: Sink for preview images, fed independently of analysis
            permission_gate: Camera permission check (always granted if None)
            aspect_ratio: Target aspect ratio for preview and analysis
            transformer: Frame transformer (default instance if None)
        """
        self._provider_factory = provider_factory
        self._worker = worker
        self._dispatcher = dispatcher
        self._preview = preview
        self._permission_gate = permission_gate
        self._aspect_ratio = aspect_ratio
        self._transformer = transformer or FrameTransformer()

        self._lock = threading.Lock()
        self._state = PipelineState.UNINITIALIZED
        self._generation = 0
        self._provider: CaptureProvider | None = None
        self._busy = False
        self._bind_thread: threading.Thread | None = None
        self.stats = CaptureStats()

    @property
    def state(self) -> PipelineState:
        """Current capture state."""
        with self._lock:
            return self._state

    @property
    def is_busy(self) -> bool:
        """Check if a frame is currently in flight."""
        with self._lock:
            return self._busy

    def start(self) -> None:
        """Acquire the capture provider and bind streams asynchronously.

        Does nothing while a start is pending or the session is bound. If the
        camera permission is missing it is requested first, and the session
        starts only once it is granted.
        """
        if self._permission_gate is not None and not self._permission_gate.is_granted():
            logger.info("Camera permission not granted, requesting")
            self._permission_gate.request(self._on_permission_result)
            return

        with self._lock:
            if self._state in (PipelineState.LOADING, PipelineState.READY):
                return
            self._state = PipelineState.LOADING
            self._generation += 1
            generation = self._generation

            self._bind_thread = threading.Thread(
                target=self._bind,
                args=(generation,),
                name="camera-provider",
                daemon=True,
            )
            self._bind_thread.start()

        logger.info("Starting camera")

    def wait_started(self, timeout: float | None = None) -> bool:
        """Block until a pending start finishes.

        Returns:
            True if the session ended up bound
        """
        thread = self._bind_thread
        if thread is not None:
            thread.join(timeout)
        return self.state is PipelineState.READY

    def stop(self) -> None:
        """Unbind all streams. Safe from any state and idempotent."""
        with self._lock:
            self._generation += 1
            provider = self._provider
            self._provider = None
            self._state = PipelineState.UNINITIALIZED

        if provider is not None:
            provider.unbind_all()
            logger.info(
                "Camera stopped (received %d, dropped %d, analyzed %d)",
                self.stats.received,
                self.stats.dropped,
                self.stats.analyzed,
            )

    def on_frame(self, raw: Frame) -> None:
        """Entry point for every frame the capture subsystem produces.

        Called on the capture thread. Never blocks on inference.
        """
        with self._lock:
            self.stats.received += 1
            accept = self._state is PipelineState.READY and not self._busy and self._worker.is_ready
            if accept:
                self._busy = True
            else:
                self.stats.dropped += 1

        if not accept:
            raw.release()
            return

        if not self._worker.analyze(partial(self._analyze, raw)):
            with self._lock:
                self._busy = False
                self.stats.dropped += 1
            raw.release()

    def _analyze(self, raw: Frame) -> None:
        # Runs on the detection worker thread
        try:
            image = self._transformer.transform(raw)
            result = self._worker.run_detect(image)
            if result is not None:
                with self._lock:
                    self.stats.analyzed += 1
        finally:
            with self._lock:
                self._busy = False

    def _on_permission_result(self, granted: bool) -> None:
        if granted:
            self.start()
        else:
            logger.warning("Camera permission denied, preview stays blank")

    def _bind(self, generation: int) -> None:
        provider: CaptureProvider | None = None
        try:
            provider = self._provider_factory()
            provider.unbind_all()
            provider.bind(
                self.on_frame,
                preview=self._preview,
                strategy=BackpressureStrategy.KEEP_ONLY_LATEST,
                aspect_ratio=self._aspect_ratio,
            )
        except Exception as e:
            error = e if isinstance(e, BindError) else BindError(f"Use case binding failed: {e}")
            logger.error("Use case binding failed: %s", e)
            with self._lock:
                if generation == self._generation:
                    self._state = PipelineState.UNINITIALIZED
            if provider is not None:
                provider.unbind_all()
            self._dispatcher.post_error(error)
            return

        with self._lock:
            stale = generation != self._generation
            if not stale:
                self._provider = provider
                self._state = PipelineState.READY

        if stale:
            # stop() was called while binding
            provider.unbind_all()
            return

        logger.info("Camera bound (aspect ratio %s)", self._aspect_ratio.name)
