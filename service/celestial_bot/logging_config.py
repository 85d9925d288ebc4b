"""
Logging configuration for the celestial bot service.
"""

import logging
import sys

ROOT_LOGGER_NAME = "celestial_bot"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Setup logging with proper format and handlers."""

    # Create logger
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())

    # Remove existing handlers
    logger.handlers.clear()

    # Create console handler with formatting
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    # Create formatter
    formatter = logging.Formatter(
        '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)

    # Add handler to logger
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger of the service logger tree."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
