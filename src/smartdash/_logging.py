"""Log formatting for the dashboard core.

Records can carry dashboard context passed through ``extra=`` at the
call site::

    logger.info("Published %s", payload, extra={"topic": topic})

The recognised keys are listed in :data:`CONTEXT_FIELDS`.  In JSON
mode they become top-level keys of the NDJSON line, so a log
aggregator can filter on ``topic`` or ``rule_id`` directly.  In text
mode they are appended to the line as ``key=value`` pairs.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from smartdash._settings import LoggingSettings

_ONE_MB = 1024 * 1024

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

CONTEXT_FIELDS: tuple[str, ...] = ("topic", "rule_id", "action", "connection_state")
"""Record attributes copied into the output when a call site sets them."""


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """The context fields present on *record*, in :data:`CONTEXT_FIELDS` order."""
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record, one record per line.

    Always present: ``timestamp`` (UTC, ISO 8601), ``level``,
    ``logger``, ``message`` and ``service``.  ``version`` appears when
    non-empty, each context field when the record carries it, and
    ``exception`` when a traceback was logged.
    """

    def __init__(self, *, service: str = "", version: str = "") -> None:
        super().__init__()
        self._service = service
        self._version = version

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }
        if self._version:
            entry["version"] = self._version
        entry.update(record_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        # default=str covers enum members and other non-JSON context values.
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable line with context appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        context = record_context(record)
        if not context:
            return text
        pairs = " ".join(f"{name}={value}" for name, value in context.items())
        # Keep the context on the first line, ahead of any traceback.
        head, newline, rest = text.partition("\n")
        return f"{head} {pairs}{newline}{rest}"


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str,
    version: str = "",
) -> None:
    """Point the root logger at stderr, and at a rotating file if configured.

    Existing root handlers are removed first, so calling this twice
    does not duplicate output.
    """
    formatter: logging.Formatter
    if settings.format == "json":
        formatter = JsonFormatter(service=service, version=version)
    else:
        formatter = TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file is not None:
        handlers.append(
            RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_mb * _ONE_MB,
                backupCount=settings.backup_count,
            )
        )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(settings.level)
