"""Centralized logging configuration for product image operations."""

import os
import sys
import logging
from typing import Optional

ROOT_LOGGER_NAME = "product-images"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    The level is applied when the logger is first configured, or whenever
    ``level`` is passed explicitly. Later calls without a level keep the
    current one, so ``set_debug_logging`` survives repeated setup.

    Args:
        name: Logger name (defaults to "product-images")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Already configured
    if logger.handlers:
        return logger

    if not level:
        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, env_level, logging.INFO))

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


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Children of "product-images" (e.g. "product-images.archive") get no
    handler or level of their own; they inherit both from the package logger.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        setup_logger(ROOT_LOGGER_NAME)
        return logging.getLogger(name)
    return setup_logger(name)


def set_debug_logging(name: str = ROOT_LOGGER_NAME) -> None:
    """Switch the named logger and the root logger to DEBUG."""
    get_logger(name).setLevel(logging.DEBUG)
    logging.getLogger().setLevel(logging.DEBUG)


logger = setup_logger()
