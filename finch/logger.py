# finch/logger.py
"""Logging for finch: namespaced loggers and an opt-in console handler."""

import logging
from typing import Optional, TextIO

_ROOT = "finch"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Worker threads decode, so their names are worth seeing
SERVER_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the finch namespace."""
    if name == _ROOT or name.startswith(f"{_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")


def setup_logging(
    level: Optional[int] = None,
    *,
    stream: Optional[TextIO] = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Handler:
    """
    Attach one console handler to the finch logger and return it.

    Calling again never stacks handlers: the existing one is re-levelled
    and keeps its stream and format. Never called on import.
    """
    if level is None:
        level = logging.INFO

    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)

    for handler in logger.handlers:
        if getattr(handler, "_finch_console", False):
            handler.setLevel(level)
            return handler

    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    handler._finch_console = True
    logger.addHandler(handler)
    return handler


def teardown_logging() -> None:
    """Remove the handler installed by setup_logging, if any."""
    logger = logging.getLogger(_ROOT)
    for handler in list(logger.handlers):
        if getattr(handler, "_finch_console", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)
