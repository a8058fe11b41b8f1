"""
Centralized logging for chartlab.

Modules log through ``get_logger(__name__)``; nothing is printed until an
application (or ``python -m chartlab``) calls ``setup_logging``, which puts a
console handler on the ``chartlab`` package logger and leaves the root logger
alone.

Usage:
    from chartlab.log import get_logger

    logger = get_logger(__name__)
    logger.warning("Color column %s not found in data, it will be ignored", col)
"""

import logging
import sys

PACKAGE_LOGGER = "chartlab"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_handler = None


def setup_logging(level: str = "INFO", stream=None) -> logging.Logger:
    """Attach a console handler to the chartlab logger. Repeated calls only change the level."""
    global _handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _handler is None:
        _handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(_handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a chartlab module (typically ``__name__``)."""
    return logging.getLogger(name)
