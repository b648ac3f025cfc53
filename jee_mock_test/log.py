"""
log.py — logging setup for host applications

Every module logs through logging.getLogger(__name__); this only wires handlers
onto the package logger.
"""

import logging
import sys
from typing import Optional

from config import LOG_FILE

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = LOG_FILE) -> logging.Logger:
    """
    Attach a file handler and a console handler to the jee_mock_test logger.

    Falls back to the console only when the log file cannot be opened.
    Calling it again replaces the handlers it installed before.
    """
    logger = logging.getLogger("jee_mock_test")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_jee_mock_test", False):
            logger.removeHandler(handler)
            handler.close()

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            handlers.insert(0, logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            # log file locked / not writable: console only
            logger.warning(f"log file unavailable ({e}); logging to console only")

    formatter = logging.Formatter(_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler._jee_mock_test = True
        logger.addHandler(handler)
    return logger
