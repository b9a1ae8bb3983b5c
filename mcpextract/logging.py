"""Diagnostic logging for mcp-extract.

Rendered documents are printed to stdout so they can be piped or redirected.
Every diagnostic (degraded reference resolution, attribute dumps) is routed
through the ``mcpextract`` logger to stderr and, optionally, a log file.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "mcpextract"
_CONSOLE_FORMAT = "[mcpextract] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger for one component, e.g. ``get_logger("references")``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach the stderr handler and the optional ``log_file`` sink.

    ``verbose`` (``-v`` or the engine debug setting) lowers the level to DEBUG
    so attribute dumps and reference listings become visible.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # StreamHandler defaults to stderr; stdout carries only the rendered output.
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
