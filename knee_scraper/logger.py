# === FILE: knee_scraper/logger.py ===
"""Project-wide logging configuration for **KneeScraper**.

Highlights
----------
* Unified format for console and optional file output (with rotation).
* Single, importable instance :data:`logger` – simply::

      from knee_scraper.logger import logger
      logger.info("Crawl started")
* Re‑configurable at runtime via :func:`configure`.
* :class:`ErrorLog` – append-only sink for per-page failures (``error.log``).
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, List, Union

# --------------------------------------------------------------------------- #
# Constants & basic types                                                     #
# --------------------------------------------------------------------------- #

_DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_ERROR_FORMAT: Final[str] = "%(asctime)s | %(message)s"
_LOGGER_NAME: Final[str] = "KneeScraper"
_ERROR_LOGGER_NAME: Final[str] = f"{_LOGGER_NAME}.errors"

_LevelT = Union[int, str]


# --------------------------------------------------------------------------- #
# Helper builders                                                             #
# --------------------------------------------------------------------------- #


def _stdout_handler(fmt: str) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _file_handler(file: Path | str, fmt: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=str(file),
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
        delay=True,
    )
    handler.setFormatter(logging.Formatter(fmt))
    return handler


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = _DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the global project logger.

    Parameters
    ----------
    level
        Numeric or textual logging level (e.g. ``"DEBUG"``).
    log_file
        Path to a logfile. *None* → console‑only output.
    log_format
        Format string for :class:`logging.Formatter`.
    replace_handlers
        *True* – remove existing handlers; *False* – just append new one(s).
    """
    lg = logging.getLogger(_LOGGER_NAME)
    lg.setLevel(level)

    if replace_handlers:
        lg.handlers.clear()

    lg.addHandler(_stdout_handler(log_format))

    if log_file is not None:
        lg.addHandler(_file_handler(log_file, log_format))

    lg.propagate = False
    return lg


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = _DEFAULT_FORMAT,
) -> logging.Logger:
    """Shortcut used by the CLI: replace handlers and return the logger."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


# --------------------------------------------------------------------------- #
# Error-log sink                                                              #
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class ErrorEntry:
    """One recorded per-page failure."""

    context: str
    error_type: str
    message: str
    timestamp: str


class ErrorLog:
    """Append-only sink for isolated failures.

    Every :meth:`record` call writes one line to *path* (``error.log`` by
    default, ``None`` disables the file) and keeps the entry in memory so the
    run report can list it. :meth:`record` never raises.

    The file handler belongs to this instance only: several logs alive at
    once never write into each other's files. Console output is shared
    through the ``KneeScraper.errors`` logger.
    """

    def __init__(self, path: str | Path | None = "error.log") -> None:
        self.path = Path(path) if path is not None else None
        self.entries: List[ErrorEntry] = []
        self._log = logging.getLogger(_ERROR_LOGGER_NAME)
        self._handler: logging.Handler | None = None
        if self.path is not None:
            try:
                self._handler = _file_handler(self.path, _ERROR_FORMAT)
            except OSError as exc:
                logger.warning("Cannot open error log %s: %s", self.path, exc)
        # Console output goes through the parent "KneeScraper" logger.
        self._log.setLevel(logging.WARNING)

    def record(self, context: str, error: BaseException | str) -> None:
        """Append ``context: error`` to the log."""
        if isinstance(error, BaseException):
            error_type, message = type(error).__name__, str(error) or type(error).__name__
        else:
            error_type, message = "Error", str(error)
        entry = ErrorEntry(
            context=context,
            error_type=error_type,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )
        self.entries.append(entry)
        record = self._log.makeRecord(
            self._log.name, logging.WARNING, __file__, 0,
            "%s: [%s] %s", (context, error_type, message), None,
        )
        # Handler I/O errors are reported by logging.Handler.handleError, not raised.
        if self._handler is not None:
            self._handler.handle(record)
        if self._log.isEnabledFor(logging.WARNING):
            self._log.handle(record)

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None

    def __len__(self) -> int:
        return len(self.entries)


# --------------------------------------------------------------------------- #
# Ready‑to‑use instance                                                       #
# --------------------------------------------------------------------------- #

logger: logging.Logger = init_logging()

__all__ = ["logger", "configure", "init_logging", "ErrorLog", "ErrorEntry"]
