"""
Structured JSON logging for the sync layer.

Sync failures are silent to callers, so the logs are the only place they
surface. Every record comes out as one JSON line with the same sync
context keys, so a collector can filter by account, day or operation
without knowing which module logged it.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Always present in the output, null when a record does not carry them
CONTEXT_FIELDS = ("component", "user_id", "day_key", "operation", "failure_kind")

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


class StructuredJsonFormatter(logging.Formatter):
    """
    Render records as single-line JSON objects.

    Top-level keys:
    - timestamp: when the record was created, ISO 8601 in UTC
    - level, logger, message
    - the sync context keys in CONTEXT_FIELDS
    - task: name of the asyncio task that logged, e.g. "hydration-add_intake"
    - exception: formatted traceback, when there is one
    - extra: any other fields passed through `extra=`
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            log_obj[key] = getattr(record, key, None)

        task = getattr(record, "taskName", None)
        if task:
            log_obj["task"] = task

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            log_obj["extra"] = extra

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "hydration_sync",
) -> logging.Logger:
    """
    Send a logger's records to stdout as structured JSON.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger,
            pass None for the root logger)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Re-configuring must not stack handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds sync context to all log messages.

    The adapter's extra dict is mutable so the owner can refresh context
    (e.g. the signed-in user) without building a new adapter. Per-call
    `extra=` values win over the bound context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra", {}))
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> None:
        """Update the context attached to subsequent records."""
        self.extra.update(context)  # type: ignore[union-attr]
