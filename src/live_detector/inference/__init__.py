"""Detector collaborator: interface and MediaPipe implementation."""

from live_detector.inference.detector import (
    Detector,
    DetectorFactory,
    MediaPipeDetector,
    load_labels,
    mediapipe_factory,
)

__all__ = [
    "Detector",
    "DetectorFactory",
    "MediaPipeDetector",
    "load_labels",
    "mediapipe_factory",
]
