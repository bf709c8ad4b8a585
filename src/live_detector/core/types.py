"""Core data types and structures."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import InitVar, dataclass, field
from enum import Enum, auto

import numpy as np
from numpy.typing import NDArray

CARDINAL_ROTATIONS = (0, 90, 180, 270)


class PixelFormat(Enum):
    """Pixel layouts a capture provider can hand to the pipeline."""

    RGBA_8888 = 4
    RGB_888 = 3
    GRAY_8 = 1

    @property
    def bytes_per_pixel(self) -> int:
        """Number of bytes (and channels) per pixel."""
        return self.value


class AspectRatio(Enum):
    """Target aspect ratio requested from the capture subsystem."""

    RATIO_4_3 = (4, 3)
    RATIO_16_9 = (16, 9)

    @classmethod
    def parse(cls, text: str) -> AspectRatio:
        """Parse a ``"W:H"`` string such as ``"4:3"``."""
        for ratio in cls:
            if text == f"{ratio.value[0]}:{ratio.value[1]}":
                return ratio
        raise ValueError(f"Unsupported aspect ratio: {text}")

    @property
    def ratio(self) -> float:
        """Width divided by height."""
        width, height = self.value
        return width / height


class BackpressureStrategy(Enum):
    """How a capture provider behaves when the analyzer is busy."""

    KEEP_ONLY_LATEST = auto()
    BLOCK_PRODUCER = auto()


class PipelineState(Enum):
    """Lifecycle of the capture session and the detection worker.

    Transitions:
        UNINITIALIZED → LOADING → READY ⇄ RESTARTING → CLOSED

    CLOSED is terminal.
    """

    UNINITIALIZED = auto()
    LOADING = auto()
    READY = auto()
    RESTARTING = auto()
    CLOSED = auto()


class FrameRelease:
    """Release bookkeeping for one frame, kept apart from its pixel data."""

    __slots__ = ("_callback", "_lock", "_released")

    def __init__(self, callback: Callable[[], None] | None = None) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._released = False

    @property
    def is_released(self) -> bool:
        """Check if the callback has been claimed."""
        return self._released

    def __call__(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        if self._callback is not None:
            self._callback()


@dataclass(frozen=True, eq=False)
class Frame:
    """Immutable view of the pixel data for one capture instant.

    The frame owns an underlying capture resource that must be given back
    through ``release()`` once its pixels have been copied. Release runs the
    callback at most once, so it is safe on every exit path.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        pixel_format: Layout of ``buffer``
        buffer: Raw, tightly packed pixel bytes
        rotation_degrees: Clockwise rotation that makes the frame upright
        mirror: Whether the frame must be flipped horizontally after rotation
        timestamp: Capture time in seconds
        index: Frame sequence number
    """

    width: int
    height: int
    pixel_format: PixelFormat
    buffer: bytes
    rotation_degrees: int = 0
    mirror: bool = False
    timestamp: float = 0.0
    index: int = 0
    on_release: InitVar[Callable[[], None] | None] = None
    _release: FrameRelease = field(init=False, repr=False)

    def __post_init__(self, on_release: Callable[[], None] | None) -> None:
        if self.rotation_degrees not in CARDINAL_ROTATIONS:
            raise ValueError(f"Rotation must be one of {CARDINAL_ROTATIONS}, got {self.rotation_degrees}")
        object.__setattr__(self, "_release", FrameRelease(on_release))

    @classmethod
    def from_array(
        cls,
        image: NDArray[np.uint8],
        pixel_format: PixelFormat = PixelFormat.RGBA_8888,
        **kwargs: object,
    ) -> Frame:
        """Wrap a ``(H, W[, C])`` array as a frame."""
        height, width = image.shape[:2]
        return cls(
            width=int(width),
            height=int(height),
            pixel_format=pixel_format,
            buffer=np.ascontiguousarray(image, dtype=np.uint8).tobytes(),
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def dimensions(self) -> tuple[int, int]:
        """Frame dimensions as (width, height)."""
        return self.width, self.height

    @property
    def is_released(self) -> bool:
        """Check if the capture resource has been given back."""
        return self._release.is_released

    def release(self) -> None:
        """Give the underlying capture resource back (idempotent)."""
        self._release()

    def __enter__(self) -> Frame:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.release()


@dataclass(frozen=True, slots=True)
class ModelInputImage:
    """Model-facing image handed to the detector.

    Attributes:
        image: ``(H, W, C)`` uint8 array in model orientation
        pixel_format: Layout of ``image``
    """

    image: NDArray[np.uint8]
    pixel_format: PixelFormat

    @property
    def width(self) -> int:
        """Image width in pixels."""
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        """Image height in pixels."""
        return int(self.image.shape[0])


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """A detected object. The pipeline transports it without inspecting it.

    Coordinates are normalized [0, 1] relative to the model input image.
    """

    label: str
    confidence: float
    x1: float
    y1: float
    x2: float
    y2: float

    def to_pixels(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Convert normalized corners to pixel coordinates."""
        return (
            int(self.x1 * width),
            int(self.y1 * height),
            int(self.x2 * width),
            int(self.y2 * height),
        )


@dataclass(frozen=True, slots=True)
class Empty:
    """A detection cycle that found nothing."""


@dataclass(frozen=True, slots=True)
class Found:
    """A detection cycle that found at least one object.

    Attributes:
        boxes: Detected objects
        inference_time_ms: Measured duration of the detector call
    """

    boxes: tuple[BoundingBox, ...]
    inference_time_ms: int


DetectionResult = Empty | Found


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Execution backend selection for the detector."""

    use_gpu: bool = False

    @property
    def label(self) -> str:
        """Short backend name for display."""
        return "GPU" if self.use_gpu else "CPU"


@dataclass(slots=True)
class CaptureStats:
    """Frame accounting for a capture session.

    Attributes:
        received: Frames delivered by the capture subsystem
        dropped: Frames discarded by the backpressure gate or state checks
        analyzed: Frames that went through transform and detect
    """

    received: int = 0
    dropped: int = 0
    analyzed: int = 0

    @property
    def drop_rate(self) -> float:
        """Fraction of received frames that were dropped."""
        if self.received == 0:
            return 0.0
        return self.dropped / self.received

    def reset(self) -> None:
        """Clear all counters."""
        self.received = 0
        self.dropped = 0
        self.analyzed = 0
