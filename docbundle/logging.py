"""Logger setup shared by the CLI, the orchestrator and its worker threads."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_ROOT = "docbundle"
_CONSOLE_FORMAT = "[docbundle] %(levelname)s %(message)s"
# Worker threads fetch concurrently under --jobs, so the file sink names the thread.
_FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``docbundle.<name>``, or the package logger when ``name`` is empty."""
    return logging.getLogger(f"{_ROOT}.{name}" if name else _ROOT)


def reset_logging() -> logging.Logger:
    """Detach and close every handler on the package logger and hand control back to root."""
    logger = logging.getLogger(_ROOT)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    return logger


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send run progress to stderr, and to ``log_file`` as well when one is given.

    Calling it again replaces the previous handlers, so repeated ``main()`` calls
    in one process never print a line twice.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = reset_logging()
    logger.setLevel(level)
    logger.propagate = False

    logger.addHandler(_handler(logging.StreamHandler(sys.stderr), level, _CONSOLE_FORMAT))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), level, _FILE_FORMAT)
        )
    return logger


__all__ = ["configure_logging", "get_logger", "reset_logging"]
