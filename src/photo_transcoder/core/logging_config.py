"""Centralized logging configuration for the photo transcoder."""

import os
import sys
import logging
from typing import Optional


def setup_logger(
    name: str = "photo-transcoder",
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    Args:
        name: Logger name (defaults to "photo-transcoder")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    # Level from parameter, or from the env var on first setup only, so
    # repeat lookups keep a level set later by set_debug_logging
    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    elif not logger.handlers:
        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, env_level, logging.INFO))

    # Avoid duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)

        env_format = os.getenv("LOG_FORMAT", format_type).lower()

        if env_format == "structured":
            formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | "
                "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = "photo-transcoder") -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Names without the package prefix are namespaced under "photo-transcoder",
    so get_logger("transcoder") returns "photo-transcoder.transcoder".
    """
    if name != "photo-transcoder" and not name.startswith("photo-transcoder."):
        name = f"photo-transcoder.{name}"
    return setup_logger(name)


def set_debug_logging() -> None:
    """Switch the package loggers (and the root logger) to DEBUG."""
    logging.getLogger().setLevel(logging.DEBUG)
    for name in list(logging.root.manager.loggerDict):
        if name == "photo-transcoder" or name.startswith("photo-transcoder."):
            logging.getLogger(name).setLevel(logging.DEBUG)


# Create default logger instance
logger = setup_logger()
