"""Hand-off of detection outcomes from the worker thread to the UI thread."""

from __future__ import annotations

import queue
import threading
from collections.abc import Sequence
from typing import Protocol

from live_detector.core.logging import get_logger
from live_detector.core.types import BoundingBox, DetectionResult, Empty, Found

logger = get_logger(__name__)


class Presenter(Protocol):
    """Presentation collaborator. Called only on the UI thread."""

    def on_clear(self) -> None:
        """A cycle produced no detections; clear previously drawn boxes."""
        ...

    def on_result(self, boxes: Sequence[BoundingBox], inference_time_ms: int) -> None:
        """A cycle produced detections."""
        ...

    def on_error(self, error: Exception) -> None:
        """A bind, load, or fatal pipeline error occurred."""
        ...


class ResultDispatcher:
    """Single-producer, single-consumer channel to the presenter.

    The worker thread posts; the UI thread that created the dispatcher
    drains. Messages are delivered in the order they were posted, which is
    the order detect calls completed.
    """

    def __init__(self, presenter: Presenter) -> None:
        """Initialize dispatcher on the UI thread.

        Args:
            presenter: Receiver of results, run on the creating thread
        """
        self.presenter = presenter
        self._channel: queue.SimpleQueue[DetectionResult | Exception] = queue.SimpleQueue()
        self._owner = threading.get_ident()

    @property
    def pending(self) -> int:
        """Approximate number of undelivered messages."""
        return self._channel.qsize()

    def post_result(self, result: DetectionResult) -> None:
        """Queue a detection result for the UI thread."""
        self._channel.put(result)

    def post_error(self, error: Exception) -> None:
        """Queue an error for the UI thread."""
        self._channel.put(error)

    def drain(self) -> int:
        """Deliver every pending message to the presenter.

        Returns:
            Number of messages delivered

        Raises:
            RuntimeError: If called from a thread other than the owner
        """
        if threading.get_ident() != self._owner:
            raise RuntimeError("ResultDispatcher.drain() must run on the thread that created it")

        delivered = 0
        while True:
            try:
                message = self._channel.get_nowait()
            except queue.Empty:
                return delivered

            self._deliver(message)
            delivered += 1

    def _deliver(self, message: DetectionResult | Exception) -> None:
        if isinstance(message, Empty):
            self.presenter.on_clear()
        elif isinstance(message, Found):
            self.presenter.on_result(message.boxes, message.inference_time_ms)
        else:
            self.presenter.on_error(message)
