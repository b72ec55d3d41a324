"""
Logging setup for the event pipeline.

Pipeline modules log through ``logging.getLogger(__name__)`` and attach
structured attributes with ``extra=``:

- ``subsystem``: hub / adapter / notifier
- ``event_kind``: kind of the event the record is about
- ``severity``: that event's severity

The console gets a compact human line; with a log directory, rotating
human and JSON-lines files are written as well.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

STRUCTURED_FIELDS = ("subsystem", "event_kind", "severity")

HUMAN_LOG_FILE = "mcbot_events.log"
JSON_LOG_FILE = "mcbot_events.json.log"


def structured_fields(record: logging.LogRecord) -> Dict[str, str]:
    """The structured attributes set on a record, skipping empty ones."""
    fields = {}
    for name in STRUCTURED_FIELDS:
        value = getattr(record, name, None)
        if value:
            fields[name] = str(value)
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record; non-ASCII text is kept readable."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(structured_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class HumanFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVL [subsystem] kind=...: message``, coloured on a tty."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        fields = structured_fields(record)

        head = [clock, record.levelname[:4]]
        if "subsystem" in fields:
            head.append(f"[{fields['subsystem']}]")
        if "event_kind" in fields:
            head.append(f"kind={fields['event_kind']}")
        line = f"{' '.join(head)}: {record.getMessage()}"

        if self.use_colors and sys.stderr.isatty():
            line = f"{self.COLORS.get(record.levelname, '')}{line}{self.RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _rotating_handler(
    path: str,
    formatter: logging.Formatter,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating log files; console only when None
        max_bytes: Size at which a log file rotates
        backup_count: Rotated files kept per log
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root.addHandler(console)

    if not log_dir:
        return

    os.makedirs(log_dir, exist_ok=True)
    root.addHandler(_rotating_handler(
        os.path.join(log_dir, HUMAN_LOG_FILE),
        HumanFormatter(use_colors=False), max_bytes, backup_count,
    ))
    root.addHandler(_rotating_handler(
        os.path.join(log_dir, JSON_LOG_FILE),
        JSONFormatter(), max_bytes, backup_count,
    ))
