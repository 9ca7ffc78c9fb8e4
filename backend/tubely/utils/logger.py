"""
Structured Logging Configuration Module for Tubely

Provides JSON-formatted log output for production, a readable text format for
development, Uvicorn logger integration, and context enrichment through a
``LoggerAdapter`` so pipeline stages can tag every record with the video id,
user id, media kind and stage.

Usage:
    from tubely.utils.logger import add_log_context, setup_logging

    setup_logging(log_level="INFO", json_logs=True)

    logger = logging.getLogger(__name__)
    ctx_logger = add_log_context(logger, video_id="...", kind="video")
    ctx_logger.info("Staging upload")
"""

import json
import logging
import sys
import traceback

from datetime import UTC, datetime
from typing import Any


# =============================================================================
# Constants
# =============================================================================

LOG_LEVEL_MAP: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Libraries whose INFO/DEBUG output drowns out the pipeline's own records
THIRD_PARTY_LOGGERS: list[str] = [
    "motor",
    "pymongo",
    "boto3",
    "botocore",
    "s3transfer",
    "urllib3",
    "httpx",
    "httpcore",
    "multipart",
    "asyncio",
]


class LogJSONEncoder(json.JSONEncoder):
    """JSON encoder that degrades unknown objects to their string form."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        if isinstance(obj, set | frozenset):
            return sorted(obj, key=str)
        return str(obj)


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """
    Render log records as single-line JSON objects.

    Output fields: ``timestamp`` (ISO 8601, UTC), ``level``, ``logger``,
    ``message``, an ``exception`` block when ``exc_info`` is set, and an
    ``extra`` object holding any context passed via ``extra=`` or a
    ``ContextLoggerAdapter``.

    Example output:
        {"timestamp":"2026-01-15T10:30:45.123456+00:00","level":"INFO",
         "logger":"tubely.services.ingestion_service","message":"Video published",
         "extra":{"video_id":"...","stage":"publish"}}
    """

    # Standard LogRecord attributes excluded from the extra block
    RESERVED_ATTRS: frozenset[str] = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "message",
            "module",
            "msecs",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "thread",
            "threadName",
            "taskName",
        }
    )

    def __init__(self, include_source_location: bool = False) -> None:
        super().__init__()
        self.include_source_location = include_source_location

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(
                timespec="microseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_source_location:
            log_entry["source"] = {
                "filename": record.filename,
                "lineno": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": "".join(traceback.format_exception(*record.exc_info)),
            }

        if record.stack_info:
            log_entry["stack_info"] = record.stack_info

        extra_fields = self.extract_extra_fields(record)
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(
            log_entry, cls=LogJSONEncoder, ensure_ascii=False, separators=(",", ":")
        )

    def extract_extra_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        """Collect non-standard attributes attached to the record."""
        return {
            key: value
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in self.RESERVED_ATTRS
        }


class StandardFormatter(logging.Formatter):
    """
    Human-readable formatter for local development.

    Format: [TIMESTAMP] LEVEL logger_name: message
    """

    DEFAULT_FORMAT: str = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
    DEFAULT_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self.DEFAULT_FORMAT, datefmt=self.DEFAULT_DATE_FORMAT)


# =============================================================================
# Application Logging Setup
# =============================================================================


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    third_party_level: str = "WARNING",
) -> None:
    """
    Configure application-wide logging.

    Call once at startup (the FastAPI lifespan does this). Configures the root
    logger, routes Uvicorn's loggers through the same formatter, and quiets
    chatty third-party libraries.

    Args:
        log_level: Application log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Emit JSON when True, plain text otherwise
        third_party_level: Level applied to the loggers in THIRD_PARTY_LOGGERS
    """
    level = get_log_level_from_string(log_level)

    formatter: logging.Formatter
    if json_logs:
        formatter = JSONFormatter(include_source_location=level <= logging.DEBUG)
    else:
        formatter = StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.setLevel(level)
        uvicorn_logger.propagate = False
        uvicorn_logger.handlers.clear()
        handler = logging.StreamHandler(sys.stderr if name == "uvicorn.error" else sys.stdout)
        handler.setFormatter(formatter)
        uvicorn_logger.addHandler(handler)

    quiet_level = get_log_level_from_string(third_party_level)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, json=%s", logging.getLevelName(level), json_logs
    )


# =============================================================================
# Context Enrichment
# =============================================================================


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter that merges its context into each call's ``extra`` dict.

    Values passed explicitly at the call site win over the adapter's context.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(kwargs.get("extra") or {})
        for key, value in (self.extra or {}).items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


def add_log_context(logger: logging.Logger, **context: Any) -> ContextLoggerAdapter:
    """
    Wrap ``logger`` so every record carries ``context``.

    Example:
        ctx_logger = add_log_context(logger, video_id=str(video.id), kind="video")
        ctx_logger.error("Publish failed", extra={"stage": "publish"})
    """
    return ContextLoggerAdapter(logger, context)


def get_log_level_from_string(level_str: str) -> int:
    """Map a level name to its logging constant, defaulting to INFO."""
    return LOG_LEVEL_MAP.get(level_str.upper(), logging.INFO)


__all__ = [
    "ContextLoggerAdapter",
    "JSONFormatter",
    "LOG_LEVEL_MAP",
    "StandardFormatter",
    "add_log_context",
    "get_log_level_from_string",
    "setup_logging",
]
