"""
Logging setup for the policyforge server.

Library modules only create loggers with logging.getLogger(__name__);
the server entry point calls configure_logging() once to emit one JSON
object per record on stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_RESERVED = set(vars(logging.makeLogRecord({})))


class JsonFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # Fields passed through logger.info(..., extra={...}).
        for key, value in vars(record).items():
            if key not in _RESERVED and key not in entry:
                entry[key] = value
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str | int = "INFO") -> None:
    """
    Install a JSON stream handler on the root logger.

    Calling it again replaces the handler instead of adding another one.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_policyforge", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler._policyforge = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    # botocore is chatty at DEBUG.
    logging.getLogger("botocore").setLevel(max(root.level, logging.INFO))
