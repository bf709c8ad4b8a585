"""User interface: display window, overlay rendering and result presenter."""

from live_detector.ui.display import DisplayWindow, KeyAction
from live_detector.ui.overlay import OverlayRenderer
from live_detector.ui.presenter import OverlayPresenter

__all__ = ["DisplayWindow", "KeyAction", "OverlayPresenter", "OverlayRenderer"]
