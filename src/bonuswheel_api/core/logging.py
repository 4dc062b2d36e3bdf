"""Structured JSON logging for the bonus ledger service.

Loguru owns the sink; stdlib loggers (uvicorn, SQLAlchemy, aiosqlite) are
bridged into it so every line carries the same envelope and trace context.
"""

from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib records to Loguru, keeping ``extra=`` fields."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except (TypeError, ValueError):  # pragma: no cover - malformed format strings
            message = str(record.msg)

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_FIELDS}
        bound = logger.bind(**extra) if extra else logger
        bound.opt(depth=6, exception=record.exc_info).log(level, message.replace("{", "{{").replace("}", "}}"))


def _render(record: Dict[str, Any], envelope: Dict[str, str]) -> str:
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **envelope,
    }

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    payload.update(record["extra"])
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)
    return json.dumps(payload, default=str)


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Install the JSON sink and route stdlib logging through it."""

    envelope = {"service": service_name, "environment": environment, "version": version}

    def _sink(message: "logger.Message") -> None:
        sys.stdout.write(_render(message.record, envelope) + "\n")

    logger.remove()
    logger.add(_sink, level=level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, threshold in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(threshold)
