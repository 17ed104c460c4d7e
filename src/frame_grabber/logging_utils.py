from __future__ import annotations

import logging
import sys
from typing import TextIO

LOGGER_NAME = "frame_grabber"
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# Request lines from the AI client are noise unless debugging.
CHATTY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: int = logging.INFO, stream: TextIO = sys.stderr) -> logging.Logger:
    """Attach a single stream handler to the ``frame_grabber`` logger.

    Calling again only adjusts the level, so repeated CLI invocations in one
    process do not stack handlers.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(handler)
        logger.propagate = False
    for handler in logger.handlers:
        handler.setLevel(level)

    http_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    return logger
