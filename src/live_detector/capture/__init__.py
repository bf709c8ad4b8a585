"""Capture subsystem: camera providers, preview sink and permission gate."""

from __future__ import annotations

from live_detector.capture.base import (
    CaptureProvider,
    LatestFrameSlot,
    PreviewFrame,
    PreviewSink,
    ProviderFactory,
    ThreadedCaptureProvider,
    crop_to_aspect,
)
from live_detector.capture.permissions import DevicePermissionGate, PermissionGate
from live_detector.core.config import CameraSettings, TelloSettings


def create_provider(
    camera: CameraSettings | None = None,
    tello: TelloSettings | None = None,
) -> CaptureProvider:
    """Build the capture provider selected by ``camera.source``."""
    camera = camera or CameraSettings()

    if camera.source == "tello":
        from live_detector.capture.tello import TelloCaptureProvider

        return TelloCaptureProvider(tello, camera)

    from live_detector.capture.opencv import OpenCVCaptureProvider

    return OpenCVCaptureProvider(camera)


__all__ = [
    "CaptureProvider",
    "ProviderFactory",
    "PreviewSink",
    "PreviewFrame",
    "LatestFrameSlot",
    "ThreadedCaptureProvider",
    "crop_to_aspect",
    "PermissionGate",
    "DevicePermissionGate",
    "create_provider",
]
