#!/usr/bin/env python3
"""Compare detector inference time on the CPU and GPU backends.

Reads frames from a video file or webcam, converts them the same way the
live pipeline does, and runs the detector on each backend in turn.
"""

from __future__ import annotations

import argparse
import sys

import cv2
import numpy as np
from live_detector.core.config import get_settings
from live_detector.core.exceptions import ModelLoadError
from live_detector.core.logging import get_logger, setup_logging
from live_detector.core.types import BackendConfig, Found, Frame, ModelInputImage, PixelFormat
from live_detector.inference.detector import MediaPipeDetector
from live_detector.vision.transform import FrameTransformer

logger = get_logger(__name__)


def load_images(source: int | str, count: int, rotation_degrees: int) -> list[ModelInputImage]:
    """Capture and transform up to ``count`` frames.

    Args:
        source: Webcam index or video file path
        count: Number of frames to read
        rotation_degrees: Rotation hint applied to every frame

    Returns:
        Model input images
    """
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        logger.error("Could not open source %s", source)
        return []

    transformer = FrameTransformer()
    images: list[ModelInputImage] = []

    try:
        while len(images) < count:
            ret, image = cap.read()
            if not ret:
                break

            rgba = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
            frame = Frame.from_array(
                np.asarray(rgba, dtype=np.uint8),
                PixelFormat.RGBA_8888,
                rotation_degrees=rotation_degrees,
                index=len(images),
            )
            images.append(transformer.transform(frame))
    finally:
        cap.release()

    logger.info("Loaded %d frames from %s", len(images), source)
    return images


def benchmark(
    images: list[ModelInputImage],
    model_path: str,
    labels_path: str | None,
    backend: BackendConfig,
) -> list[int] | None:
    """Run every image through a detector on one backend.

    Returns:
        Inference times in ms for frames with detections, or None if the
        backend could not be loaded
    """
    settings = get_settings()

    try:
        detector = MediaPipeDetector(model_path, labels_path, backend, settings.detector)
    except ModelLoadError as e:
        logger.error("%s backend unavailable: %s", backend.label, e)
        return None

    timings: list[int] = []
    empty = 0
    try:
        for image in images:
            result = detector.detect(image)
            if isinstance(result, Found):
                timings.append(result.inference_time_ms)
            else:
                empty += 1
    finally:
        detector.release()

    logger.info("%s: %d frames with detections, %d empty", backend.label, len(timings), empty)
    return timings


def main() -> int:
    """Run benchmark script."""
    parser = argparse.ArgumentParser(description="Benchmark detector backends")
    parser.add_argument(
        "--source",
        "-s",
        default="0",
        help="Video file or webcam index (default: 0)",
    )
    parser.add_argument(
        "--frames",
        "-n",
        type=int,
        default=100,
        help="Number of frames to benchmark (default: 100)",
    )

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.logging.level)

    source: int | str = int(args.source) if args.source.isdigit() else args.source
    images = load_images(source, args.frames, settings.camera.rotation_degrees)
    if not images:
        return 1

    for backend in (BackendConfig(use_gpu=False), BackendConfig(use_gpu=True)):
        timings = benchmark(images, settings.detector.model_path, settings.detector.labels_path, backend)
        if not timings:
            continue

        logger.info(
            "%s: mean %.1f ms, median %.1f ms, p95 %.1f ms",
            backend.label,
            float(np.mean(timings)),
            float(np.median(timings)),
            float(np.percentile(timings, 95)),
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
