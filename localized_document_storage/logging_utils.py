"""
Structured JSON logging utilities.

Records are emitted as single-line JSON objects. The storage context of a
record (collection, locale, document id, operation) is promoted to
top-level keys so log collectors can index on them; any other ``extra``
values are nested under ``context``.

Example record::

    {"timestamp": "...", "level": "INFO", "logger": "localized_document_storage.service",
     "message": "Updated document", "collection": "posts", "locale": "es",
     "document_id": "65a1f0c2e4b0a1b2c3d4e5f6", "operation": "update"}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

CONTEXT_KEYS = ("collection", "locale", "document_id", "operation")

# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_ATTRS = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for storage log records.

    Fields, in order:
    - timestamp: ISO 8601 in UTC
    - level, logger, message
    - collection, locale, document_id, operation: when set on the record
    - context: remaining extra values
    - exception: formatted traceback, when present
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_obj[key] = _jsonable(value)

        context = {
            key: _jsonable(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_KEYS and not key.startswith("_")
        }
        if context:
            log_obj["context"] = context

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "localized_document_storage",
) -> logging.Logger:
    """
    Send a logger's records to stdout as JSON.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger;
            None for the root logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger named ``localized_document_storage.<name>``."""
    return logging.getLogger(f"localized_document_storage.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter binding the collection and locale of one request.

    Per-call ``extra`` values (``document_id``, ``operation``) are merged
    over the bound ones.
    """

    @classmethod
    def for_request(
        cls, logger: logging.Logger, collection: str, locale: str
    ) -> "StorageLoggerAdapter":
        return cls(logger, {"collection": collection, "locale": locale})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add the bound context to the log record."""
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
