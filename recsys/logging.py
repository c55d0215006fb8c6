"""Structured single-line logging for the recommendation service."""

import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

# Record attributes rendered as key=value when passed through ``extra``
CONTEXT_FIELDS = ("user_id", "item_id", "rec_id", "experiment_id", "variant_id")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine", "aiosqlite")


class StructuredFormatter(logging.Formatter):
    """Formats records as ``timestamp | LEVEL | logger | message [key=value ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

        parts = [timestamp, record.levelname.ljust(8), record.name, record.getMessage()]
        context = " ".join(
            f"{name}={getattr(record, name)}" for name in CONTEXT_FIELDS if hasattr(record, name)
        )
        line = " | ".join(parts)
        if context:
            line = f"{line} [{context}]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """Route all logging through one structured handler.

    Args:
        level: Log level name; unknown names fall back to INFO
        stream: Output stream, stdout by default
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
