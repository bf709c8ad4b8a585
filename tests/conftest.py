"""Pytest fixtures for Live Detector tests."""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence

import numpy as np
import pytest

from live_detector.core.exceptions import ModelLoadError
from live_detector.core.types import (
    AspectRatio,
    BackendConfig,
    BackpressureStrategy,
    BoundingBox,
    DetectionResult,
    Empty,
    Found,
    Frame,
    ModelInputImage,
    PixelFormat,
)
from live_detector.pipeline.dispatcher import ResultDispatcher
from live_detector.pipeline.worker import DetectionWorker

WAIT = 5.0


class FakeDetector:
    """Detector that records calls and can block inside detect."""

    def __init__(
        self,
        backend: BackendConfig,
        log: list[tuple[str, str]],
        hold: threading.Event | None = None,
        empty: bool = False,
    ) -> None:
        self.backend = backend
        self.log = log
        self.hold = hold
        self.empty = empty
        self.started = threading.Event()
        self.released = False
        self.calls = 0

    def detect(self, image: ModelInputImage) -> DetectionResult:
        self.log.append(("detect", self.backend.label))
        self.started.set()
        if self.hold is not None:
            self.hold.wait(WAIT)
        self.calls += 1

        if self.empty:
            return Empty()
        box = BoundingBox(label=self.backend.label, confidence=0.9, x1=0.1, y1=0.1, x2=0.5, y2=0.5)
        return Found(boxes=(box,), inference_time_ms=50)

    def release(self) -> None:
        self.released = True
        self.log.append(("release", self.backend.label))


class FakeDetectorFactory:
    """Detector factory with scriptable failures."""

    def __init__(self) -> None:
        self.log: list[tuple[str, str]] = []
        self.instances: list[FakeDetector] = []
        self.failing_paths: set[str] = set()
        self.failing_backends: set[bool] = set()
        self.hold: threading.Event | None = None
        self.empty = False

    def __call__(
        self,
        model_path: str,
        labels_path: str | None,
        backend: BackendConfig,
    ) -> FakeDetector:
        self.log.append(("construct", backend.label))
        if model_path in self.failing_paths:
            raise ModelLoadError(f"Model file not found: {model_path}")
        if backend.use_gpu in self.failing_backends:
            raise ModelLoadError(f"{backend.label} delegate unavailable")

        detector = FakeDetector(backend, self.log, hold=self.hold, empty=self.empty)
        self.instances.append(detector)
        return detector


class RecordingPresenter:
    """Presenter that records every delivery."""

    def __init__(self) -> None:
        self.clears = 0
        self.results: list[tuple[tuple[BoundingBox, ...], int]] = []
        self.errors: list[Exception] = []

    def on_clear(self) -> None:
        self.clears += 1

    def on_result(self, boxes: Sequence[BoundingBox], inference_time_ms: int) -> None:
        self.results.append((tuple(boxes), inference_time_ms))

    def on_error(self, error: Exception) -> None:
        self.errors.append(error)


class FakeProvider:
    """Capture provider that is driven by the test instead of a device."""

    def __init__(self) -> None:
        self.analyzer = None
        self.preview = None
        self.strategy: BackpressureStrategy | None = None
        self.aspect_ratio: AspectRatio | None = None
        self.bind_calls = 0
        self.unbind_calls = 0

    def bind(
        self,
        analyzer,
        preview=None,
        strategy=BackpressureStrategy.KEEP_ONLY_LATEST,
        aspect_ratio=AspectRatio.RATIO_4_3,
    ) -> None:
        self.analyzer = analyzer
        self.preview = preview
        self.strategy = strategy
        self.aspect_ratio = aspect_ratio
        self.bind_calls += 1

    def unbind_all(self) -> None:
        self.analyzer = None
        self.unbind_calls += 1


def make_frame(
    width: int = 4,
    height: int = 3,
    pixel_format: PixelFormat = PixelFormat.RGBA_8888,
    rotation_degrees: int = 0,
    mirror: bool = False,
    index: int = 0,
    releases: list[int] | None = None,
) -> Frame:
    """Create a frame whose pixels encode their position."""
    channels = pixel_format.bytes_per_pixel
    pixels = np.arange(width * height * channels, dtype=np.uint32) % 251
    image = pixels.astype(np.uint8).reshape(height, width, channels)

    on_release = None
    if releases is not None:

        def on_release() -> None:
            releases.append(index)

    return Frame.from_array(
        image,
        pixel_format,
        rotation_degrees=rotation_degrees,
        mirror=mirror,
        index=index,
        on_release=on_release,
    )


@pytest.fixture
def model_image() -> ModelInputImage:
    """Create a small model input image."""
    return ModelInputImage(image=np.zeros((3, 4, 4), dtype=np.uint8), pixel_format=PixelFormat.RGBA_8888)


@pytest.fixture
def factory() -> FakeDetectorFactory:
    """Create a scriptable detector factory."""
    return FakeDetectorFactory()


@pytest.fixture
def presenter() -> RecordingPresenter:
    """Create a recording presenter."""
    return RecordingPresenter()


@pytest.fixture
def dispatcher(presenter: RecordingPresenter) -> ResultDispatcher:
    """Create a dispatcher owned by the test thread."""
    return ResultDispatcher(presenter)


@pytest.fixture
def worker(factory: FakeDetectorFactory, dispatcher: ResultDispatcher) -> Iterator[DetectionWorker]:
    """Create a detection worker and close it after the test."""
    worker = DetectionWorker(factory, dispatcher)
    yield worker
    if factory.hold is not None:
        factory.hold.set()
    worker.close(wait=True, timeout=WAIT)


@pytest.fixture
def provider() -> FakeProvider:
    """Create a test-driven capture provider."""
    return FakeProvider()


@pytest.fixture
def frame_factory():
    """Return a helper that builds frames with position-encoded pixels."""
    return make_frame
