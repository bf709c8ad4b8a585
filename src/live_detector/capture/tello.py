"""Tello drone camera provider."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import cv2
import numpy as np
from djitellopy import Tello

from live_detector.capture.base import ThreadedCaptureProvider
from live_detector.core.config import CameraSettings, TelloSettings
from live_detector.core.exceptions import DroneConnectionError
from live_detector.core.logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)


class TelloCaptureProvider(ThreadedCaptureProvider):
    """Streams video from a Tello drone.

    The drone is connected when the provider is bound and disconnected when
    it is unbound. Flight control is out of scope; only the camera is used.
    """

    thread_name = "tello-capture"

    def __init__(
        self,
        settings: TelloSettings | None = None,
        camera: CameraSettings | None = None,
    ) -> None:
        """Initialize provider with settings.

        Args:
            settings: Drone connection settings (uses defaults if None)
            camera: Rotation and lens settings (uses defaults if None)
        """
        self.settings = settings or TelloSettings()
        camera = camera or CameraSettings()
        super().__init__(rotation_degrees=camera.rotation_degrees, mirror=camera.mirror)
        self._frame_interval = 1.0 / max(camera.fps, 1)
        self._tello: Tello | None = None
        self._frame_reader: object | None = None

    def _open(self) -> None:
        logger.info("Connecting to Tello at %s...", self.settings.ip)

        try:
            tello = Tello(self.settings.ip)
            tello.RESPONSE_TIMEOUT = int(self.settings.connect_timeout)
            tello.connect()
            tello.streamon()
            self._frame_reader = tello.get_frame_read()
        except Exception as e:
            raise DroneConnectionError(f"Failed to connect: {e}") from e

        self._tello = tello
        logger.info("Connected to Tello (battery: %d%%)", tello.get_battery())

    def _read(self) -> NDArray[np.uint8] | None:
        # The reader always holds a frame; pace reads to the camera rate
        time.sleep(self._frame_interval)

        # djitellopy's BackgroundFrameRead stores the latest RGB frame in .frame
        frame = getattr(self._frame_reader, "frame", None)
        if not isinstance(frame, np.ndarray):
            return None

        return np.asarray(cv2.cvtColor(frame, cv2.COLOR_RGB2BGR), dtype=np.uint8)

    def _close(self) -> None:
        if self._tello is None:
            return

        try:
            self._tello.streamoff()
            self._tello.end()
        except Exception as e:
            logger.warning("Error during disconnect: %s", e)
        finally:
            self._tello = None
            self._frame_reader = None

        logger.info("Disconnected from Tello")
