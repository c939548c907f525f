"""Log output for an unattended bridge.

Two formats are available through :class:`LoggingSettings`:

``json``
    :class:`JsonFormatter`, one object per line.  Fields passed with
    ``extra=`` become top-level keys, so a log shipper can index them::

        logger.info("Shower finished", extra={"duration_s": 195})

``text``
    The usual ``asctime [LEVEL] logger: message`` line for a terminal.

Handlers always write to stderr; ``LoggingSettings.file`` adds a
size-rotated log file next to it.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from showerguard._settings import LoggingSettings

_MB = 1 << 20

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_STANDARD_RECORD_FIELDS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__,
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """NDJSON formatter.

    Every line has ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``,
    ``message`` and ``service``; ``version`` when one was given;
    ``exception`` and ``stack_info`` when the record carries them.  Fields
    from ``extra=`` are added unless they collide with one of those.
    """

    def __init__(self, *, service: str = "", version: str = "") -> None:
        super().__init__()
        self._service = service
        self._version = version

    def _base(self, record: logging.LogRecord) -> dict[str, Any]:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        base: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }
        if self._version:
            base["version"] = self._version
        return base

    def format(self, record: logging.LogRecord) -> str:
        line = self._base(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS
        }
        for key, value in extras.items():
            line.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            line["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            line["stack_info"] = self.formatStack(record.stack_info)

        # json.dumps escapes the newlines inside tracebacks.
        return json.dumps(line, default=str)


def _formatter_for(
    settings: LoggingSettings,
    service: str,
    version: str,
) -> logging.Formatter:
    if settings.format == "json":
        return JsonFormatter(service=service, version=version)
    return logging.Formatter(_TEXT_FORMAT)


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str,
    version: str = "",
) -> None:
    """Replace the root logger's handlers according to *settings*.

    Args:
        settings: Level, format and optional rotating file.
        service: Name stamped on every JSON line.
        version: Version stamped on every JSON line, if not empty.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file is not None:
        handlers.append(
            RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_mb * _MB,
                backupCount=settings.backup_count,
            ),
        )

    formatter = _formatter_for(settings, service, version)
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(settings.level)
