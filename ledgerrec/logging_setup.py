"""Centralized logging configuration for the ``ledgerrec`` package.

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger (``"ledgerrec"``). Called by the CLI at startup.
- ``get_logger(name)``: acquire a logger by name, ensuring that the package
  root logger has at least a ``NullHandler`` attached when not configured.

Library modules never attach their own handlers; they call
``get_logger(__name__)`` and rely on the CLI to configure output.
"""

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "ledgerrec"
_HANDLER: logging.StreamHandler | None = None


def _level_from(value: int | str | None) -> int | None:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip().upper()
        if value.isdigit():
            return int(value)
        numeric = getattr(logging, value, None)
        if isinstance(numeric, int):
            return numeric
    return None


def _parse_level(level: int | str | None) -> int:
    resolved = _level_from(level)
    if resolved is None:
        resolved = _level_from(os.getenv("LEDGERREC_LOG_LEVEL"))
    return logging.WARNING if resolved is None else resolved


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Configure the package root logger.

    The handler is attached once; later calls only update its level and
    stream, so every CLI invocation in one process writes to its own stderr.

    Args:
        level: Level as ``int`` or name (``"DEBUG"``). ``None`` falls back to
            ``LEDGERREC_LOG_LEVEL``, then ``WARNING``.
        fmt: Optional format string, defaults to
            ``"%(asctime)s %(name)s %(levelname)s %(message)s"``
        stream: Output stream for the handler (defaults to ``sys.stderr``)
    """
    global _HANDLER

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    resolved = _parse_level(level)

    if _HANDLER is None:
        # Remove NullHandlers so they don't swallow records after configuration
        for h in list(logger.handlers):
            if isinstance(h, logging.NullHandler):
                logger.removeHandler(h)
        _HANDLER = logging.StreamHandler(stream or sys.stderr)
        _HANDLER.setFormatter(
            logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        logger.addHandler(_HANDLER)
        logger.propagate = False
    else:
        _HANDLER.setStream(stream or sys.stderr)

    _HANDLER.setLevel(resolved)
    logger.setLevel(resolved)


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name with a silent default for library use."""
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _HANDLER is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
