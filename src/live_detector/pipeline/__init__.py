"""Frame processing pipeline: capture session, detection worker and result dispatch."""

from live_detector.pipeline.dispatcher import Presenter, ResultDispatcher
from live_detector.pipeline.session import CameraSession
from live_detector.pipeline.worker import DetectionWorker

__all__ = ["CameraSession", "DetectionWorker", "Presenter", "ResultDispatcher"]
