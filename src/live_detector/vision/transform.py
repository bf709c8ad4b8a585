"""Conversion of raw capture frames into model-facing images.

Rotation and mirroring are expressed as a single affine matrix and applied
with OpenCV. For cardinal angles every matrix entry is an integer, so nearest
neighbour sampling reproduces pixels exactly.
"""

from __future__ import annotations

import cv2
import numpy as np
from numpy.typing import NDArray

from live_detector.core.exceptions import TransformContractError
from live_detector.core.types import CARDINAL_ROTATIONS, Frame, ModelInputImage


def output_size(width: int, height: int, rotation_degrees: int) -> tuple[int, int]:
    """Size (width, height) of an image after a cardinal rotation."""
    if rotation_degrees in (90, 270):
        return height, width
    return width, height


def build_transform_matrix(
    width: int,
    height: int,
    rotation_degrees: int,
    mirror: bool = False,
) -> NDArray[np.float64]:
    """Build the 2x3 affine matrix mapping source pixels to model pixels.

    The rotation is clockwise in image coordinates (y pointing down) and is
    followed by a translation that keeps the result in the positive quadrant.
    When ``mirror`` is set, a horizontal flip about the rotated image's width
    is composed after the rotation.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        rotation_degrees: One of 0, 90, 180, 270
        mirror: Flip horizontally after rotating

    Returns:
        2x3 float matrix suitable for ``cv2.warpAffine``
    """
    if rotation_degrees not in CARDINAL_ROTATIONS:
        raise ValueError(f"Rotation must be one of {CARDINAL_ROTATIONS}, got {rotation_degrees}")

    theta = np.deg2rad(rotation_degrees)
    cos = round(float(np.cos(theta)))
    sin = round(float(np.sin(theta)))
    rotate = np.array(
        [
            [cos, -sin, 0.0],
            [sin, cos, 0.0],
            [0.0, 0.0, 1.0],
        ]
    )

    # Pixel centres of the four corners, as homogeneous column vectors
    corners = np.array(
        [
            [0, width - 1, 0, width - 1],
            [0, 0, height - 1, height - 1],
            [1, 1, 1, 1],
        ],
        dtype=np.float64,
    )
    rotated = rotate @ corners
    shift_x, shift_y = -rotated[:2].min(axis=1)
    translate = np.array(
        [
            [1.0, 0.0, shift_x],
            [0.0, 1.0, shift_y],
            [0.0, 0.0, 1.0],
        ]
    )
    matrix = translate @ rotate

    if mirror:
        out_width, _ = output_size(width, height, rotation_degrees)
        flip = np.array(
            [
                [-1.0, 0.0, out_width - 1],
                [0.0, 1.0, 0.0],
                [0.0, 0.0, 1.0],
            ]
        )
        matrix = flip @ matrix

    return matrix[:2]


def orient_image(
    image: NDArray[np.uint8],
    rotation_degrees: int,
    mirror: bool = False,
) -> NDArray[np.uint8]:
    """Rotate and optionally mirror an ``(H, W[, C])`` image.

    Used for preview so the screen shows what the model sees.
    """
    height, width = image.shape[:2]
    matrix = build_transform_matrix(width, height, rotation_degrees, mirror)
    out_width, out_height = output_size(width, height, rotation_degrees)

    warped = cv2.warpAffine(image, matrix, (out_width, out_height), flags=cv2.INTER_NEAREST)
    # OpenCV drops the channel axis of single-channel images
    if image.ndim == 3 and warped.ndim == 2:
        warped = warped[:, :, np.newaxis]
    return np.asarray(warped, dtype=np.uint8)


def copy_pixels(frame: Frame) -> NDArray[np.uint8]:
    """Copy a frame's buffer into a dense ``(H, W, C)`` array.

    Raises:
        TransformContractError: If the buffer size does not match the geometry
    """
    channels = frame.pixel_format.bytes_per_pixel
    expected = frame.width * frame.height * channels
    if len(frame.buffer) != expected:
        raise TransformContractError(
            f"Frame {frame.index}: buffer holds {len(frame.buffer)} bytes, "
            f"expected {expected} for {frame.width}x{frame.height} {frame.pixel_format.name}"
        )

    pixels = np.frombuffer(frame.buffer, dtype=np.uint8)
    return pixels.reshape(frame.height, frame.width, channels).copy()


class FrameTransformer:
    """Turns raw capture frames into model input images.

    Each call copies the pixels out of the frame, gives the frame back to the
    capture subsystem, then rotates and mirrors the copy.
    """

    def transform(self, raw: Frame) -> ModelInputImage:
        """Produce the model-facing image for one frame.

        Args:
            raw: Frame from the capture subsystem (released by this call)

        Returns:
            Rotated and optionally mirrored image

        Raises:
            TransformContractError: If the frame buffer does not match its geometry
        """
        try:
            bitmap = copy_pixels(raw)
        finally:
            raw.release()

        rotated = orient_image(bitmap, raw.rotation_degrees, raw.mirror)
        return ModelInputImage(image=rotated, pixel_format=raw.pixel_format)

    def __call__(self, raw: Frame) -> ModelInputImage:
        """Alias for ``transform``."""
        return self.transform(raw)
