"""
Logging configuration.

Configures Python logging for console output with request correlation.

Features:
- Human-readable console format in development
- Structured JSON logging everywhere else
- Request ID injection so webhook and checkout logs can be correlated
"""

import json
import logging
import sys
from contextvars import ContextVar

from src.config.config import Config

logger = logging.getLogger(__name__)

# Populated by RequestIDMiddleware for the lifetime of a request
current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


class RequestContextFilter(logging.Filter):
    """
    Logging filter that adds the active request ID to log records.

    Records emitted outside of a request are left untouched.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Add request context to log record.

        Args:
            record: LogRecord to enrich

        Returns:
            bool: Always True (don't filter out records)
        """
        request_id = current_request_id.get()
        if request_id and not hasattr(record, "request_id"):
            record.request_id = request_id
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Formats log records as JSON with request context and additional metadata.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: LogRecord to format

        Returns:
            str: JSON-formatted log entry
        """
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "request_id"):
            log_data["request_id"] = record.request_id

        # Provider/event labels passed through `extra=`
        for field in ("provider", "event_type", "event_id"):
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging() -> None:
    """
    Configure application logging.

    Sets up:
    - Console handler on stdout
    - Request context filter for log correlation
    - JSON formatting outside development
    """
    root_logger = logging.getLogger()
    level = getattr(logging, Config.LOG_LEVEL, logging.INFO)
    root_logger.setLevel(level)

    # Clear existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.addFilter(RequestContextFilter())

    # Use simple format for console in development, JSON elsewhere
    if Config.IS_DEVELOPMENT:
        console_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        console_formatter = StructuredFormatter()

    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    logger.info("Console logging configured (env=%s, level=%s)", Config.APP_ENV, Config.LOG_LEVEL)

    # Set log levels for noisy libraries
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
