"""
Structured logging for SLI retrieval requests.

Every message logged while handling an event carries the Keptn context
and the id of the triggering event, so log lines of a single evaluation
can be correlated across services.

Usage:
    from dynatrace_sli.logger import EventLogger

    log = EventLogger(keptn_context="a1b2", event_id="e-1")
    log.info("Retrieving Dynatrace timeseries metrics")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

_event_logger = logging.getLogger("dynatrace_sli.events")


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = getattr(record, "event_fields", None)
        if extra:
            entry.update(extra)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """
    Configure the root logger for the service process.

    Args:
        level: debug, info, warning or error
        fmt: json for log shippers, text for a console
    """
    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


class EventLogger:
    """
    Logger bound to one inbound event.

    Emits JSON entries with ``keptnContext``, ``eventId`` and ``service``
    fields. The Keptn context is also prefixed to the message so text
    output stays correlatable.
    """

    def __init__(
        self,
        keptn_context: str,
        event_id: str,
        service_name: str = "dynatrace-sli-service",
        logger: Optional[logging.Logger] = None,
    ):
        self.keptn_context = keptn_context
        self.event_id = event_id
        self.service_name = service_name
        self._logger = logger or _event_logger

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        event_fields = {
            "keptnContext": self.keptn_context,
            "eventId": self.event_id,
            "service": self.service_name,
        }
        event_fields.update(fields)
        self._logger.log(
            level,
            f"[{self.keptn_context}] {message}",
            extra={"event_fields": event_fields},
        )

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, **fields)
