"""Capture subsystem interfaces and the threaded provider base class."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

from live_detector.core.exceptions import BindError, CaptureError
from live_detector.core.logging import get_logger
from live_detector.core.types import (
    AspectRatio,
    BackpressureStrategy,
    Frame,
    PixelFormat,
)

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)

Analyzer = Callable[[Frame], None]

_COLOR_CONVERSIONS = {
    PixelFormat.RGBA_8888: cv2.COLOR_BGR2RGBA,
    PixelFormat.RGB_888: cv2.COLOR_BGR2RGB,
    PixelFormat.GRAY_8: cv2.COLOR_BGR2GRAY,
}


@dataclass(frozen=True, slots=True)
class PreviewFrame:
    """Image for on-screen preview.

    Attributes:
        image: BGR image as captured (OpenCV format)
        rotation_degrees: Clockwise rotation that makes the image upright
        mirror: Whether to flip horizontally after rotating
        timestamp: Capture time in seconds
    """

    image: NDArray[np.uint8]
    rotation_degrees: int = 0
    mirror: bool = False
    timestamp: float = 0.0


class PreviewSink(Protocol):
    """Receives preview images on the capture thread."""

    def submit(self, frame: PreviewFrame) -> None: ...


class CaptureProvider(Protocol):
    """A bindable camera."""

    def bind(
        self,
        analyzer: Analyzer,
        preview: PreviewSink | None = None,
        strategy: BackpressureStrategy = BackpressureStrategy.KEEP_ONLY_LATEST,
        aspect_ratio: AspectRatio = AspectRatio.RATIO_4_3,
    ) -> None: ...

    def unbind_all(self) -> None: ...


ProviderFactory = Callable[[], CaptureProvider]


class LatestFrameSlot:
    """Preview sink that keeps only the most recent image."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: PreviewFrame | None = None
        self._sequence = 0

    @property
    def sequence(self) -> int:
        """Number of images submitted so far."""
        with self._lock:
            return self._sequence

    def submit(self, frame: PreviewFrame) -> None:
        """Replace the held image."""
        with self._lock:
            self._frame = frame
            self._sequence += 1

    def latest(self) -> PreviewFrame | None:
        """Most recent image, or None if nothing was captured yet."""
        with self._lock:
            return self._frame

    def clear(self) -> None:
        """Forget the held image."""
        with self._lock:
            self._frame = None


def crop_to_aspect(image: NDArray[np.uint8], aspect_ratio: AspectRatio) -> NDArray[np.uint8]:
    """Center-crop an image to the target aspect ratio.

    Args:
        image: ``(H, W[, C])`` image
        aspect_ratio: Target width/height ratio

    Returns:
        Cropped view of the image (unchanged if already at the ratio)
    """
    height, width = image.shape[:2]
    target_w, target_h = aspect_ratio.value

    if width * target_h > height * target_w:
        new_width = height * target_w // target_h
        x0 = (width - new_width) // 2
        return image[:, x0 : x0 + new_width]

    if width * target_h < height * target_w:
        new_height = width * target_h // target_w
        y0 = (height - new_height) // 2
        return image[y0 : y0 + new_height]

    return image


class ThreadedCaptureProvider(ABC):
    """Capture provider that reads frames on its own thread.

    Each captured image goes to the preview sink first and is then handed to
    the analyzer as a Frame. The analyzer is expected to return immediately;
    dropping frames under load is its responsibility.
    """

    max_consecutive_failures = 30
    thread_name = "camera-capture"

    def __init__(
        self,
        rotation_degrees: int = 0,
        mirror: bool = False,
        pixel_format: PixelFormat = PixelFormat.RGBA_8888,
    ) -> None:
        """Initialize provider.

        Args:
            rotation_degrees: Rotation hint attached to every frame
            mirror: Mirror flag attached to every frame
            pixel_format: Pixel layout handed to the analyzer
        """
        self.rotation_degrees = rotation_degrees
        self.mirror = mirror
        self.pixel_format = pixel_format
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._outstanding = 0
        self._outstanding_lock = threading.Lock()
        self._frame_idx = 0

    @property
    def is_bound(self) -> bool:
        """Check if the capture thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def outstanding_frames(self) -> int:
        """Frames handed out and not yet released."""
        with self._outstanding_lock:
            return self._outstanding

    def bind(
        self,
        analyzer: Analyzer,
        preview: PreviewSink | None = None,
        strategy: BackpressureStrategy = BackpressureStrategy.KEEP_ONLY_LATEST,
        aspect_ratio: AspectRatio = AspectRatio.RATIO_4_3,
    ) -> None:
        """Open the device and start delivering frames.

        Raises:
            BindError: If already bound or the strategy is unsupported
            CaptureError: If the device cannot be opened
        """
        if self.is_bound:
            raise BindError("Capture provider is already bound")
        if strategy is not BackpressureStrategy.KEEP_ONLY_LATEST:
            raise BindError(f"Unsupported backpressure strategy: {strategy.name}")

        self._open()
        self._stop_event.clear()
        self._frame_idx = 0
        self._thread = threading.Thread(
            target=self._capture_loop,
            args=(analyzer, preview, aspect_ratio),
            name=self.thread_name,
            daemon=True,
        )
        self._thread.start()

    def unbind_all(self) -> None:
        """Stop delivering frames and close the device."""
        thread = self._thread
        self._thread = None
        self._stop_event.set()

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

        self._close()

    def _capture_loop(
        self,
        analyzer: Analyzer,
        preview: PreviewSink | None,
        aspect_ratio: AspectRatio,
    ) -> None:
        start_time = time.monotonic()
        failures = 0

        while not self._stop_event.is_set():
            try:
                image = self._read()
            except CaptureError as e:
                logger.error("Frame capture error: %s", e)
                break

            if image is None:
                failures += 1
                if failures >= self.max_consecutive_failures:
                    logger.error("Too many consecutive capture failures (%d), stopping", failures)
                    break
                time.sleep(0.01)
                continue
            failures = 0

            image = crop_to_aspect(image, aspect_ratio)
            timestamp = time.monotonic() - start_time

            if preview is not None:
                preview.submit(
                    PreviewFrame(
                        image=image,
                        rotation_degrees=self.rotation_degrees,
                        mirror=self.mirror,
                        timestamp=timestamp,
                    )
                )

            analyzer(self._make_frame(image, timestamp))

        logger.debug("Capture loop exited after %d frames", self._frame_idx)

    def _make_frame(self, image: NDArray[np.uint8], timestamp: float) -> Frame:
        converted = cv2.cvtColor(image, _COLOR_CONVERSIONS[self.pixel_format])

        with self._outstanding_lock:
            self._outstanding += 1

        frame = Frame.from_array(
            np.asarray(converted, dtype=np.uint8),
            self.pixel_format,
            rotation_degrees=self.rotation_degrees,
            mirror=self.mirror,
            timestamp=timestamp,
            index=self._frame_idx,
            on_release=self._on_frame_released,
        )
        self._frame_idx += 1
        return frame

    def _on_frame_released(self) -> None:
        with self._outstanding_lock:
            self._outstanding -= 1

    @abstractmethod
    def _open(self) -> None:
        """Open the underlying device.

        Raises:
            CaptureError: If the device is unavailable
        """

    @abstractmethod
    def _read(self) -> NDArray[np.uint8] | None:
        """Read one BGR image, or None if no frame is ready."""

    @abstractmethod
    def _close(self) -> None:
        """Release the underlying device (idempotent)."""
