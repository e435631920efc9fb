"""
Standard-library logging integration.

CloudWatchLogsHandler turns ``logging.LogRecord`` objects into bunyan-shaped
records and hands them to a DeliveryEngine, so any application using
``logging`` can forward to CloudWatch Logs.

Invariants:
    - emit() never blocks on the network
    - Records from this package and from botocore are never forwarded
      (they would feed back into the engine that produced them)
"""

from __future__ import annotations

import logging
import os
import socket
from datetime import datetime, timezone
from typing import Any, Dict

from .delivery.engine import DeliveryEngine

# stdlib level -> bunyan level
BUNYAN_LEVELS = {
    logging.DEBUG: 20,
    logging.INFO: 30,
    logging.WARNING: 40,
    logging.ERROR: 50,
    logging.CRITICAL: 60,
}

IGNORED_LOGGERS = ("logship.cwlogs_stream", "botocore", "aiobotocore")

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def bunyan_level(levelno: int) -> int:
    """Map a stdlib level number onto the bunyan scale."""
    if levelno < logging.DEBUG:
        return 10
    for std, bunyan in sorted(BUNYAN_LEVELS.items(), reverse=True):
        if levelno >= std:
            return bunyan
    return 20


class CloudWatchLogsHandler(logging.Handler):
    """Logging handler that forwards records through a DeliveryEngine.

    Example:
        >>> engine = DeliveryEngine(client, StreamConfig("my-app", "web-1"))
        >>> await engine.start()
        >>> logging.getLogger().addHandler(CloudWatchLogsHandler(engine))
    """

    def __init__(self, engine: DeliveryEngine, level: int = logging.NOTSET) -> None:
        super().__init__(level=level)
        self.engine = engine
        self.hostname = socket.gethostname()
        self.pid = os.getpid()

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(IGNORED_LOGGERS):
            return False
        return bool(super().filter(record))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.engine.accept(self.to_record(record))
        except Exception:
            self.handleError(record)

    def to_record(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Convert a LogRecord into a bunyan-shaped mapping."""
        data: Dict[str, Any] = {
            "name": record.name,
            "hostname": self.hostname,
            "pid": self.pid,
            "level": bunyan_level(record.levelno),
            "msg": record.getMessage(),
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc),
            "v": 0,
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in data:
                data[key] = value
        if record.exc_info:
            data["err"] = self.formatException(record.exc_info)
        return data

    def formatException(self, exc_info: Any) -> str:
        formatter = self.formatter or logging.Formatter()
        return formatter.formatException(exc_info)
