"""Frame geometry: buffer copy, rotation and mirroring."""

from live_detector.vision.transform import (
    FrameTransformer,
    build_transform_matrix,
    orient_image,
    output_size,
)

__all__ = [
    "FrameTransformer",
    "build_transform_matrix",
    "orient_image",
    "output_size",
]
