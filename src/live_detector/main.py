"""Main entry point for Live Detector application."""

from __future__ import annotations

import argparse
import os
import sys
from functools import partial

from live_detector.capture import DevicePermissionGate, LatestFrameSlot, create_provider
from live_detector.core.config import Settings, get_settings
from live_detector.core.exceptions import LiveDetectorError, TransformContractError
from live_detector.core.logging import get_logger, setup_logging
from live_detector.core.types import AspectRatio, BackendConfig
from live_detector.inference import mediapipe_factory
from live_detector.pipeline import CameraSession, DetectionWorker, ResultDispatcher
from live_detector.ui import DisplayWindow, KeyAction, OverlayPresenter, OverlayRenderer

logger = get_logger(__name__)


def run_detection_session(settings: Settings) -> int:
    """Run the live detection loop on the calling (UI) thread.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    logger.info("Starting Live Detector")

    backend = BackendConfig(use_gpu=settings.detector.use_gpu)
    presenter = OverlayPresenter(OverlayRenderer(settings.ui), backend)
    dispatcher = ResultDispatcher(presenter)
    preview = LatestFrameSlot()
    display = DisplayWindow(settings.ui)

    worker = DetectionWorker(mediapipe_factory(settings.detector), dispatcher)
    session = CameraSession(
        partial(create_provider, settings.camera, settings.tello),
        worker,
        dispatcher,
        preview=preview,
        permission_gate=DevicePermissionGate(settings.camera.device),
        aspect_ratio=AspectRatio.parse(settings.camera.aspect_ratio),
    )

    try:
        # Model load runs on the worker; the camera starts in parallel
        worker.load(settings.detector.model_path, settings.detector.labels_path, backend)
        session.start()
        display.open()

        logger.info("Starting detection loop (press 'g' to toggle GPU, 'q' to quit)")

        while True:
            dispatcher.drain()

            latest = preview.latest()
            if latest is None:
                display.show_blank()
            else:
                display.show_frame(presenter.render(latest))

            action = display.poll_key(wait_ms=1)

            if action == KeyAction.QUIT:
                logger.info("Quit requested")
                break

            elif action == KeyAction.TOGGLE_BACKEND:
                backend = BackendConfig(use_gpu=not backend.use_gpu)
                logger.info("Switching detector to %s", backend.label)
                worker.restart(backend)
                # Indicator flips now, before the restart has completed
                presenter.set_backend_indicator(backend)

            elif action == KeyAction.TOGGLE_LABELS:
                settings.ui.show_labels = not settings.ui.show_labels

        return 0

    except TransformContractError as e:
        logger.critical("Frame contract violated: %s", e)
        return 2

    except LiveDetectorError as e:
        logger.error("Detection error: %s", e)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    finally:
        session.stop()
        worker.close(wait=True, timeout=5.0)
        display.close()
        logger.info(
            "Live Detector stopped (frames received %d, dropped %d, analyzed %d)",
            session.stats.received,
            session.stats.dropped,
            session.stats.analyzed,
        )


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Live Detector - real-time object detection on a camera stream"
    )
    parser.add_argument(
        "--gpu",
        action="store_true",
        help="Start with the GPU delegate",
    )
    parser.add_argument(
        "--source",
        choices=["opencv", "tello"],
        help="Capture source (overrides CAMERA_SOURCE)",
    )
    parser.add_argument(
        "--device",
        help="Camera index, video file or stream URL (overrides CAMERA_DEVICE)",
    )
    parser.add_argument(
        "--model",
        help="Path to the TFLite detection model (overrides DETECTOR_MODEL_PATH)",
    )
    parser.add_argument(
        "--labels",
        help="Labels file, one name per line; empty to use the model metadata (overrides DETECTOR_LABELS_PATH)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
    if args.gpu:
        os.environ["DETECTOR_USE_GPU"] = "true"
    if args.source:
        os.environ["CAMERA_SOURCE"] = args.source
    if args.device:
        os.environ["CAMERA_DEVICE"] = args.device
    if args.model:
        os.environ["DETECTOR_MODEL_PATH"] = args.model
    if args.labels is not None:
        os.environ["DETECTOR_LABELS_PATH"] = args.labels

    settings = get_settings()
    setup_logging(settings.logging.level, settings.logging.file)

    sys.exit(run_detection_session(settings))


if __name__ == "__main__":
    main()
