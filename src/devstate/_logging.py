"""Logging setup: level-tagged, timestamped lines to console and a rotating file."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from types import TracebackType

from devstate._constants import LOG_DATE_FORMAT, LOG_FILE_MAX_BYTES, UNCAUGHT_LEVEL_TAG

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"

#: ``extra`` key marking a record as an uncaught fault.
UNCAUGHT_ATTR = "uncaught"

_logger = logging.getLogger("devstate")


class AgentFormatter(logging.Formatter):
    """``YYYY-MM-DD HH:MM:SS | LEVEL | message`` with uncaught faults tagged.

    Tracebacks (including chained causes) follow the message line.
    """

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if getattr(record, UNCAUGHT_ATTR, False):
            record.levelname = UNCAUGHT_LEVEL_TAG
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(level: str | int = "INFO", log_file: str | None = None) -> None:
    """Configure the root logger once for the process."""
    formatter = AgentFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=1, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def log_uncaught(exc: BaseException, message: str = "Uncaught exception") -> None:
    _logger.critical(
        "%s: %s",
        message,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={UNCAUGHT_ATTR: True},
    )


def _excepthook(
    exc_type: type[BaseException],
    exc: BaseException,
    tb: TracebackType | None,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc, tb)
        return
    _logger.critical("Uncaught exception: %s", exc, exc_info=(exc_type, exc, tb), extra={UNCAUGHT_ATTR: True})


def install_excepthook() -> None:
    """Route process-level uncaught exceptions through the agent logger."""
    sys.excepthook = _excepthook
