"""Live object detection over a camera stream with a non-blocking inference pipeline."""

__version__ = "0.1.0"
