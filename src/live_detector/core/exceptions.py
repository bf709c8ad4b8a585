"""Custom exceptions for Live Detector."""


class LiveDetectorError(Exception):
    """Base exception for all Live Detector errors."""

    pass


class BindError(LiveDetectorError):
    """Capture streams could not be bound to the camera."""

    def __init__(self, message: str = "Use case binding failed") -> None:
        self.message = message
        super().__init__(self.message)


class ModelLoadError(LiveDetectorError):
    """The detector collaborator could not be constructed."""

    def __init__(self, message: str = "Failed to load detection model") -> None:
        self.message = message
        super().__init__(self.message)


class TransformContractError(LiveDetectorError):
    """Frame buffer does not match its declared geometry.

    This is a defect in the capture contract and is never recovered from.
    """

    def __init__(self, message: str = "Frame buffer does not match frame geometry") -> None:
        self.message = message
        super().__init__(self.message)


class CaptureError(LiveDetectorError):
    """Error with a capture device or its frame stream."""

    def __init__(self, message: str = "Capture device error") -> None:
        self.message = message
        super().__init__(self.message)


class DroneConnectionError(CaptureError):
    """Failed to connect to or communicate with the Tello drone."""

    def __init__(self, message: str = "Failed to connect to drone") -> None:
        super().__init__(message)
