"""OpenCV VideoCapture provider for webcams, video files and network streams."""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

from live_detector.capture.base import ThreadedCaptureProvider
from live_detector.core.config import CameraSettings
from live_detector.core.exceptions import CaptureError
from live_detector.core.logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)


class OpenCVCaptureProvider(ThreadedCaptureProvider):
    """Captures frames with ``cv2.VideoCapture``."""

    thread_name = "opencv-capture"

    def __init__(self, settings: CameraSettings | None = None) -> None:
        """Initialize provider with settings.

        Args:
            settings: Camera settings (uses defaults if None)
        """
        self.settings = settings or CameraSettings()
        super().__init__(
            rotation_degrees=self.settings.rotation_degrees,
            mirror=self.settings.mirror,
        )
        self._cap: cv2.VideoCapture | None = None

    def _open(self) -> None:
        device = self.settings.device
        cap = cv2.VideoCapture(device)
        if not cap.isOpened():
            cap.release()
            raise CaptureError(f"Failed to open camera device {device}")

        # Only local devices accept geometry hints
        if isinstance(device, int):
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
            cap.set(cv2.CAP_PROP_FPS, self.settings.fps)
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        self._cap = cap
        logger.info(
            "Camera opened (device %s, %dx%d @ %.1f fps)",
            device,
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            cap.get(cv2.CAP_PROP_FPS),
        )

    def _read(self) -> NDArray[np.uint8] | None:
        if self._cap is None:
            raise CaptureError("Camera is not open")

        ret, image = self._cap.read()
        if not ret or image is None:
            return None
        return np.asarray(image, dtype=np.uint8)

    def _close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera released")
