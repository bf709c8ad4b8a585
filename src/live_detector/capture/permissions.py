"""Camera permission gate."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from live_detector.core.logging import get_logger

logger = get_logger(__name__)


class PermissionGate(Protocol):
    """Camera permission check and request flow."""

    def is_granted(self) -> bool: ...

    def request(self, on_result: Callable[[bool], None]) -> None: ...


class DevicePermissionGate:
    """Checks that the current user may open a local video device.

    Only local V4L2 devices (``/dev/videoN``) carry file permissions; network
    streams, files and other platforms are always granted. Access cannot be
    escalated from inside the process, so ``request`` re-checks and reports.
    """

    def __init__(self, device: int | str, device_root: str = "/dev") -> None:
        """Initialize gate for a capture device.

        Args:
            device: Device index or stream URL
            device_root: Directory holding video device nodes
        """
        self.device = device
        self.device_root = Path(device_root)

    @property
    def device_node(self) -> Path | None:
        """Device node guarded by this gate, if any."""
        if isinstance(self.device, int) and sys.platform.startswith("linux"):
            return self.device_root / f"video{self.device}"
        return None

    def is_granted(self) -> bool:
        """Check camera access."""
        node = self.device_node
        if node is None or not node.exists():
            # Nothing to guard; a missing device surfaces as a bind error
            return True
        return os.access(node, os.R_OK | os.W_OK)

    def request(self, on_result: Callable[[bool], None]) -> None:
        """Re-check access and report the outcome."""
        granted = self.is_granted()
        if not granted:
            logger.warning(
                "No access to %s; add the user to the 'video' group and log in again",
                self.device_node,
            )
        on_result(granted)
