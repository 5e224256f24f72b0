"""
tablefactor/core/logging.py

Module loggers live under the "tablefactor" namespace. The package logger
carries a NullHandler so nothing is printed unless the application
configures logging, either itself or through setup_logging.
"""

import logging
from typing import Optional

PACKAGE_LOGGER = "tablefactor"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())

_handler: Optional[logging.Handler] = None


def setup_logging(level: str = "INFO", format_string: Optional[str] = None) -> logging.Logger:
    """
    Send tablefactor log records to stderr.

    Only the package logger is touched; calling again replaces the handler
    installed by the previous call.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        format_string: Custom format string (uses default if None)
    """
    global _handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        logger.removeHandler(_handler)
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    logger.addHandler(_handler)
    logger.setLevel(getattr(logging, level.upper()))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a module (typically __name__)."""
    return logging.getLogger(name)
