"""Logging setup for the routescan CLI and service."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_ROOT = "routescan"
_CONSOLE_FORMAT = "[routescan] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``routescan.<name>``, or the package logger itself."""
    return logging.getLogger(f"{_ROOT}.{name}" if name else _ROOT)


def _level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route routescan records to stderr and, optionally, a log file.

    Console output never goes to stdout, which is reserved for command
    results such as the ``routes`` listing. The file sink always records
    debug detail so a quiet console run can still be diagnosed afterwards.
    """
    level = _level(verbose, quiet)
    logger = logging.getLogger(_ROOT)
    logger.propagate = False

    # Repeated main() calls in one process must not stack handlers.
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    logger.addHandler(_handler(logging.StreamHandler(sys.stderr), level, _CONSOLE_FORMAT))
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(
            _handler(logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG, _FILE_FORMAT)
        )
        level = logging.DEBUG
    logger.setLevel(level)
    return logger


__all__ = ["configure_logging", "get_logger"]
