"""Core infrastructure: config, types, exceptions, and logging."""

from live_detector.core.config import Settings, get_settings
from live_detector.core.exceptions import (
    BindError,
    CaptureError,
    DroneConnectionError,
    LiveDetectorError,
    ModelLoadError,
    TransformContractError,
)
from live_detector.core.logging import get_logger, setup_logging
from live_detector.core.types import (
    AspectRatio,
    BackendConfig,
    BackpressureStrategy,
    BoundingBox,
    CaptureStats,
    DetectionResult,
    Empty,
    Found,
    Frame,
    ModelInputImage,
    PipelineState,
    PixelFormat,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "PixelFormat",
    "AspectRatio",
    "BackpressureStrategy",
    "PipelineState",
    "Frame",
    "ModelInputImage",
    "BoundingBox",
    "Empty",
    "Found",
    "DetectionResult",
    "BackendConfig",
    "CaptureStats",
    # Exceptions
    "LiveDetectorError",
    "BindError",
    "ModelLoadError",
    "TransformContractError",
    "CaptureError",
    "DroneConnectionError",
    # Logging
    "setup_logging",
    "get_logger",
]
