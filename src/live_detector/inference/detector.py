"""Detector collaborator interface and MediaPipe object detector wrapper."""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import mediapipe as mp
import numpy as np
from mediapipe.tasks import python
from mediapipe.tasks.python import vision

from live_detector.core.config import DetectorSettings
from live_detector.core.exceptions import ModelLoadError
from live_detector.core.logging import get_logger
from live_detector.core.types import (
    BackendConfig,
    BoundingBox,
    DetectionResult,
    Empty,
    Found,
    ModelInputImage,
    PixelFormat,
)

logger = get_logger(__name__)

_IMAGE_FORMATS = {
    PixelFormat.RGBA_8888: mp.ImageFormat.SRGBA,
    PixelFormat.RGB_888: mp.ImageFormat.SRGB,
    PixelFormat.GRAY_8: mp.ImageFormat.GRAY8,
}


class Detector(Protocol):
    """Inference collaborator driven by the detection worker."""

    def detect(self, image: ModelInputImage) -> DetectionResult:
        """Run inference synchronously. May take tens of milliseconds."""
        ...

    def release(self) -> None:
        """Free the model and any accelerator resources."""
        ...


class DetectorFactory(Protocol):
    """Constructs a detector for a model and backend.

    Raises:
        ModelLoadError: If the model cannot be loaded
    """

    def __call__(
        self,
        model_path: str,
        labels_path: str | None,
        backend: BackendConfig,
    ) -> Detector: ...


def load_labels(labels_path: str | None) -> list[str]:
    """Read one label per line, ignoring blank lines.

    Raises:
        ModelLoadError: If the file is given but cannot be read
    """
    if not labels_path:
        return []

    try:
        text = Path(labels_path).read_text(encoding="utf-8")
    except OSError as e:
        raise ModelLoadError(f"Failed to read labels from {labels_path}: {e}") from e

    return [line.strip() for line in text.splitlines() if line.strip()]


class MediaPipeDetector:
    """Wrapper for MediaPipe object detection using the Tasks API.

    The backend selects the task delegate, so switching between CPU and GPU
    means building a new instance. Results are converted to BoundingBox
    values so MediaPipe objects never leave this module.
    """

    def __init__(
        self,
        model_path: str,
        labels_path: str | None = None,
        backend: BackendConfig | None = None,
        settings: DetectorSettings | None = None,
    ) -> None:
        """Load the model.

        Args:
            model_path: Path to a TFLite object detection model
            labels_path: Optional labels file, one label per line
            backend: Execution backend (CPU if None)
            settings: Detection thresholds (uses defaults if None)

        Raises:
            ModelLoadError: If the model fails to load
        """
        self.settings = settings or DetectorSettings()
        self.backend = backend or BackendConfig()
        self.labels = load_labels(labels_path)

        if not Path(model_path).is_file():
            raise ModelLoadError(f"Model file not found: {model_path}")

        delegate = (
            python.BaseOptions.Delegate.GPU if self.backend.use_gpu else python.BaseOptions.Delegate.CPU
        )

        try:
            base_options = python.BaseOptions(model_asset_path=str(model_path), delegate=delegate)
            options = vision.ObjectDetectorOptions(
                base_options=base_options,
                running_mode=vision.RunningMode.IMAGE,
                score_threshold=self.settings.score_threshold,
                max_results=self.settings.max_results,
            )
            self._detector: vision.ObjectDetector | None = vision.ObjectDetector.create_from_options(options)
        except Exception as e:
            raise ModelLoadError(f"Failed to initialize {self.backend.label} detector: {e}") from e

        logger.info("MediaPipe ObjectDetector initialized (%s, %s)", model_path, self.backend.label)

    @property
    def is_loaded(self) -> bool:
        """Check if the model is still held."""
        return self._detector is not None

    def detect(self, image: ModelInputImage) -> DetectionResult:
        """Run object detection on one model input image.

        Args:
            image: Rotated/mirrored frame

        Returns:
            Found with boxes and timing, or Empty if nothing was detected
        """
        if self._detector is None:
            raise ModelLoadError("Detector has been released")

        data = image.image
        if image.pixel_format is PixelFormat.GRAY_8:
            data = data[:, :, 0]
        mp_image = mp.Image(
            image_format=_IMAGE_FORMATS[image.pixel_format],
            data=np.ascontiguousarray(data),
        )

        start = time.perf_counter()
        result = self._detector.detect(mp_image)
        inference_time_ms = int((time.perf_counter() - start) * 1000)

        boxes = self._convert_detections(result.detections, image.width, image.height)
        if not boxes:
            return Empty()

        return Found(boxes=tuple(boxes), inference_time_ms=inference_time_ms)

    def release(self) -> None:
        """Release MediaPipe resources."""
        if self._detector is not None:
            self._detector.close()
            self._detector = None
            logger.debug("MediaPipe ObjectDetector released (%s)", self.backend.label)

    def _convert_detections(
        self,
        detections: Sequence[object],
        width: int,
        height: int,
    ) -> list[BoundingBox]:
        """Convert MediaPipe detections to normalized BoundingBox values."""
        boxes: list[BoundingBox] = []

        for detection in detections:
            categories = getattr(detection, "categories", None)
            bbox = getattr(detection, "bounding_box", None)
            if not categories or bbox is None:
                continue

            category = categories[0]
            boxes.append(
                BoundingBox(
                    label=self._label_for(category),
                    confidence=float(category.score),
                    x1=_clamp(bbox.origin_x / width),
                    y1=_clamp(bbox.origin_y / height),
                    x2=_clamp((bbox.origin_x + bbox.width) / width),
                    y2=_clamp((bbox.origin_y + bbox.height) / height),
                )
            )

        return boxes

    def _label_for(self, category: object) -> str:
        name = getattr(category, "category_name", None)
        if name:
            return str(name)

        index = getattr(category, "index", None)
        if index is not None and 0 <= index < len(self.labels):
            return self.labels[index]
        return str(index)


def _clamp(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


def mediapipe_factory(settings: DetectorSettings | None = None) -> DetectorFactory:
    """Build a detector factory bound to the given thresholds."""

    def construct(
        model_path: str,
        labels_path: str | None,
        backend: BackendConfig,
    ) -> Detector:
        return MediaPipeDetector(model_path, labels_path, backend, settings)

    return construct
