"""Preview window and keyboard input, driven from the UI thread."""

from __future__ import annotations

from enum import Enum, auto
from typing import TYPE_CHECKING

import cv2
import numpy as np

from live_detector.core.config import UISettings
from live_detector.core.logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)


class KeyAction(Enum):
    """Actions triggered by keyboard input."""

    NONE = auto()
    QUIT = auto()
    TOGGLE_BACKEND = auto()
    TOGGLE_LABELS = auto()


KEY_BINDINGS: dict[int, KeyAction] = {
    ord("q"): KeyAction.QUIT,
    ord("Q"): KeyAction.QUIT,
    27: KeyAction.QUIT,  # ESC
    ord("g"): KeyAction.TOGGLE_BACKEND,
    ord("G"): KeyAction.TOGGLE_BACKEND,
    ord("l"): KeyAction.TOGGLE_LABELS,
    ord("L"): KeyAction.TOGGLE_LABELS,
}


def fit_to_window(image: NDArray[np.uint8], width: int, height: int) -> NDArray[np.uint8]:
    """Scale an image into a fixed canvas, keeping its aspect ratio.

    Rotated previews are portrait while the window is landscape, so the
    image is letterboxed on black instead of stretched.

    Args:
        image: BGR image of any size
        width: Canvas width
        height: Canvas height

    Returns:
        ``(height, width, 3)`` canvas with the image centered
    """
    src_h, src_w = image.shape[:2]
    scale = min(width / src_w, height / src_h)
    new_w = max(1, round(src_w * scale))
    new_h = max(1, round(src_h * scale))

    canvas = np.zeros((height, width, 3), dtype=np.uint8)
    resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)
    if resized.ndim == 2:
        resized = cv2.cvtColor(resized, cv2.COLOR_GRAY2BGR)

    x0 = (width - new_w) // 2
    y0 = (height - new_h) // 2
    canvas[y0 : y0 + new_h, x0 : x0 + new_w] = resized
    return canvas


class DisplayWindow:
    """OpenCV window showing the annotated preview.

    Closing the window with the mouse counts as a quit request.
    """

    WINDOW_NAME = "Live Detector"

    def __init__(self, settings: UISettings | None = None) -> None:
        """Initialize display window.

        Args:
            settings: UI settings (uses defaults if None)
        """
        self.settings = settings or UISettings()
        self.width = self.settings.display_width
        self.height = self.settings.display_height
        self._open = False

    @property
    def is_open(self) -> bool:
        """Check if the window has been created and not closed."""
        return self._open

    def open(self) -> None:
        """Create the window."""
        if self._open:
            return
        cv2.namedWindow(self.WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(self.WINDOW_NAME, self.width, self.height)
        self._open = True
        logger.info("Display window opened (%dx%d)", self.width, self.height)

    def close(self) -> None:
        """Destroy the window if it is open."""
        if not self._open:
            return
        cv2.destroyWindow(self.WINDOW_NAME)
        self._open = False
        logger.info("Display window closed")

    def show_frame(self, image: NDArray[np.uint8]) -> None:
        """Show an annotated preview image."""
        self.open()
        cv2.imshow(self.WINDOW_NAME, fit_to_window(image, self.width, self.height))

    def show_blank(self, message: str = "Waiting for camera...") -> None:
        """Show a black canvas with a centered message."""
        canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)

        font = cv2.FONT_HERSHEY_SIMPLEX
        (text_w, text_h), _ = cv2.getTextSize(message, font, 1.0, 2)
        origin = ((self.width - text_w) // 2, (self.height + text_h) // 2)
        cv2.putText(canvas, message, origin, font, 1.0, (255, 255, 255), 2)

        self.open()
        cv2.imshow(self.WINDOW_NAME, canvas)

    def poll_key(self, wait_ms: int = 1) -> KeyAction:
        """Pump window events and map the pressed key.

        Args:
            wait_ms: Milliseconds to wait for a key

        Returns:
            Action for the pressed key, QUIT if the window was closed
        """
        key = cv2.waitKey(wait_ms) & 0xFF

        if self._open and cv2.getWindowProperty(self.WINDOW_NAME, cv2.WND_PROP_VISIBLE) < 1:
            self._open = False
            return KeyAction.QUIT

        if key == 255:
            return KeyAction.NONE
        return KEY_BINDINGS.get(key, KeyAction.NONE)

    def __enter__(self) -> DisplayWindow:
        """Context manager entry."""
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()
