"""
Logging setup for scriptflow.

Diagnostics go to stderr so that script output on stdout stays clean. The
``text`` format renders through rich; ``json`` emits one object per record.
"""

import json
import logging
import sys
import time
from typing import Any, Dict

from rich.console import Console
from rich.logging import RichHandler

CONTEXT_ATTRS = ("script", "identity", "phase")


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs logs as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for attr in CONTEXT_ATTRS:
            if hasattr(record, attr):
                payload[attr] = getattr(record, attr)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str = "WARNING", fmt: str = "text") -> None:
    """Configure the ``scriptflow`` logger tree."""

    if fmt == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("scriptflow")
    logger.handlers = [handler]
    logger.setLevel(level.upper())
    logger.propagate = False


def log_with_context(
    logger: logging.Logger, level: int, message: str, **context: Any
) -> None:
    """Log a message with additional context fields."""

    logger.log(level, message, extra=context)
