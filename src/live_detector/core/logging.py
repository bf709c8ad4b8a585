"""Logging configuration and utilities.

Every record carries the thread name, since the pipeline spreads work
over the UI, camera, capture and detection worker threads.
"""

import logging
import sys
from pathlib import Path

LOGGER_NAMESPACE = "live_detector"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)-16s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty libraries (delegate setup, stream decoding)
THIRD_PARTY_LOGGERS = ("mediapipe", "absl", "djitellopy", "libav")


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file that receives a copy of every record

    Returns:
        The configured package logger
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(_handler(logging.StreamHandler(sys.stdout), log_level))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_handler(logging.FileHandler(path), log_level))

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger inside the package namespace.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger whose records reach the handlers set up by ``setup_logging``
    """
    if not name.startswith(LOGGER_NAMESPACE):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return logging.getLogger(name)
