"""Overlay rendering for detection boxes and the heads-up display."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

from live_detector.core.config import UISettings
from live_detector.core.types import BackendConfig, BoundingBox

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass
class OverlayLayout:
    """Layout configuration for overlay elements."""

    box_thickness: int = 3
    label_font_scale: float = 0.6
    label_padding: int = 4

    # Status panel (top-left)
    status_x: int = 12
    status_y: int = 32
    status_line_height: int = 32

    # Colors (BGR)
    color_box: tuple[int, int, int] = (255, 80, 30)
    color_text: tuple[int, int, int] = (255, 255, 255)
    color_bg: tuple[int, int, int] = (0, 0, 0)
    color_gpu: tuple[int, int, int] = (0, 165, 255)  # Orange
    color_cpu: tuple[int, int, int] = (128, 128, 128)  # Gray
    color_error: tuple[int, int, int] = (0, 0, 255)


class OverlayRenderer:
    """Draws detections and status onto preview images."""

    def __init__(
        self,
        settings: UISettings | None = None,
        layout: OverlayLayout | None = None,
    ) -> None:
        """Initialize renderer.

        Args:
            settings: UI settings (uses defaults if None)
            layout: Overlay layout configuration
        """
        self.settings = settings or UISettings()
        self.layout = layout or OverlayLayout()

    def draw_boxes(
        self,
        image: NDArray[np.uint8],
        boxes: Sequence[BoundingBox],
    ) -> NDArray[np.uint8]:
        """Draw detection boxes with labels.

        Args:
            image: BGR image in model orientation
            boxes: Detections with normalized coordinates

        Returns:
            Image with boxes drawn
        """
        result = image.copy()
        h, w = result.shape[:2]
        font = cv2.FONT_HERSHEY_SIMPLEX

        for box in boxes:
            x1, y1, x2, y2 = box.to_pixels(w, h)
            cv2.rectangle(result, (x1, y1), (x2, y2), self.layout.color_box, self.layout.box_thickness)

            if not self.settings.show_labels:
                continue

            text = f"{box.label} {box.confidence:.2f}"
            (text_w, text_h), _ = cv2.getTextSize(text, font, self.layout.label_font_scale, 1)
            pad = self.layout.label_padding
            cv2.rectangle(
                result,
                (x1, y1),
                (x1 + text_w + 2 * pad, y1 + text_h + 2 * pad),
                self.layout.color_bg,
                -1,
            )
            cv2.putText(
                result,
                text,
                (x1 + pad, y1 + text_h + pad),
                font,
                self.layout.label_font_scale,
                self.layout.color_text,
                1,
            )

        return result

    def draw_status(
        self,
        image: NDArray[np.uint8],
        backend: BackendConfig,
        inference_time_ms: int | None = None,
        error: str | None = None,
    ) -> NDArray[np.uint8]:
        """Draw backend indicator, inference time and the last error.

        Args:
            image: Input image
            backend: Backend shown on the indicator
            inference_time_ms: Last measured inference duration
            error: Error message to show, if any

        Returns:
            Image with status panel
        """
        result = image.copy()
        x = self.layout.status_x
        y = self.layout.status_y
        line_h = self.layout.status_line_height

        color = self.layout.color_gpu if backend.use_gpu else self.layout.color_cpu
        self._draw_text_with_bg(result, backend.label, (x, y), color)

        if self.settings.show_inference_time and inference_time_ms is not None:
            y += line_h
            self._draw_text_with_bg(result, f"{inference_time_ms}ms", (x, y), self.layout.color_text)

        if error:
            y += line_h
            self._draw_text_with_bg(result, error, (x, y), self.layout.color_error)

        return result

    def _draw_text_with_bg(
        self,
        image: NDArray[np.uint8],
        text: str,
        pos: tuple[int, int],
        color: tuple[int, int, int],
        font_scale: float = 0.7,
        thickness: int = 2,
    ) -> None:
        font = cv2.FONT_HERSHEY_SIMPLEX
        (text_w, text_h), _ = cv2.getTextSize(text, font, font_scale, thickness)
        cv2.rectangle(
            image,
            (pos[0] - 4, pos[1] - text_h - 4),
            (pos[0] + text_w + 4, pos[1] + 6),
            self.layout.color_bg,
            -1,
        )
        cv2.putText(image, text, pos, font, font_scale, color, thickness)
