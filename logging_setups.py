# logging_setups.py

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def setup_logger(
    name: Optional[str] = None,
    log_file: Optional[str] = None,
    level: int = logging.INFO,
    console: bool = True,
    console_level: Optional[int] = None,
) -> logging.Logger:
    """
    Configure a named logger with a stderr console handler and an optional rotating file.

    Calling this again for the same name replaces the handlers it installed before,
    so repeated CLI invocations in one process do not duplicate output.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        if getattr(handler, "_from_setup_logger", False):
            logger.removeHandler(handler)
            handler.close()

    console_level = level if console_level is None else console_level
    fmt = logging.Formatter(LOG_FORMAT)
    levels = []

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(console_level)
        stream_handler.setFormatter(fmt)
        stream_handler._from_setup_logger = True
        logger.addHandler(stream_handler)
        levels.append(console_level)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3)
        file_handler.setLevel(level)
        file_handler.setFormatter(fmt)
        file_handler._from_setup_logger = True
        logger.addHandler(file_handler)
        levels.append(level)

    logger.setLevel(min(levels) if levels else level)
    logger.propagate = False
    return logger


def detach_file_handlers():
    """
    Remove file handlers installed by ``setup_logger`` from every logger in this process.

    Forked workers call this so that only the coordinator writes to (and rotates)
    the log file; their console handlers are left in place.
    """
    loggers = [logging.getLogger()] + [
        lg for lg in logging.root.manager.loggerDict.values() if isinstance(lg, logging.Logger)
    ]
    for logger in loggers:
        for handler in list(logger.handlers):
            if getattr(handler, "_from_setup_logger", False) and isinstance(handler, logging.FileHandler):
                logger.removeHandler(handler)
                handler.close()
