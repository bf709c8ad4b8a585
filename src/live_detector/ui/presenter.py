"""Presenter that keeps the latest detection outcome for drawing."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from live_detector.capture.base import PreviewFrame
from live_detector.core.exceptions import TransformContractError
from live_detector.core.logging import get_logger
from live_detector.core.types import BackendConfig, BoundingBox
from live_detector.ui.overlay import OverlayRenderer
from live_detector.vision.transform import orient_image

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

logger = get_logger(__name__)


class OverlayPresenter:
    """Receives results on the UI thread and renders them over the preview.

    The backend indicator is set by the caller when the user toggles the
    backend, before the restart has actually completed.
    """

    def __init__(
        self,
        renderer: OverlayRenderer | None = None,
        backend: BackendConfig | None = None,
    ) -> None:
        """Initialize presenter.

        Args:
            renderer: Overlay renderer (default instance if None)
            backend: Initial backend shown on the indicator
        """
        self.renderer = renderer or OverlayRenderer()
        self.backend_indicator = backend or BackendConfig()
        self.boxes: tuple[BoundingBox, ...] = ()
        self.inference_time_ms: int | None = None
        self.last_error: Exception | None = None
        self.result_count = 0

    def on_clear(self) -> None:
        """Drop previously drawn boxes."""
        self.boxes = ()
        self.last_error = None

    def on_result(self, boxes: Sequence[BoundingBox], inference_time_ms: int) -> None:
        """Show a new set of boxes and the inference time."""
        self.boxes = tuple(boxes)
        self.inference_time_ms = inference_time_ms
        self.last_error = None
        self.result_count += 1

    def on_error(self, error: Exception) -> None:
        """Record a pipeline error.

        Raises:
            TransformContractError: Re-raised on the UI thread, it is a defect
        """
        self.last_error = error
        if isinstance(error, TransformContractError):
            raise error
        logger.warning("Pipeline error: %s", error)

    def set_backend_indicator(self, backend: BackendConfig) -> None:
        """Update the backend indicator."""
        self.backend_indicator = backend

    def render(self, preview: PreviewFrame) -> NDArray[np.uint8]:
        """Compose the preview image with boxes and status."""
        image = orient_image(preview.image, preview.rotation_degrees, preview.mirror)
        image = self.renderer.draw_boxes(image, self.boxes)
        error = str(self.last_error) if self.last_error is not None else None
        return self.renderer.draw_status(
            image,
            backend=self.backend_indicator,
            inference_time_ms=self.inference_time_ms,
            error=error,
        )
