"""
Logging configuration for the ServiceHub backend.

Features:
- Structured JSON logging for production (log aggregators like Datadog, CloudWatch, ELK)
- Colored console output for development
- Request context tracking (booking_id, user_id, event)

Usage:
    from .logging_config import get_logger, log_state_change, log_error

    logger = get_logger("bookings")
    logger.info("Message", extra={"booking_id": booking.id})

    log_state_change(booking.id, "PENDING", "CONFIRMED")
"""

import logging
import sys
import json
import os
from datetime import datetime
from typing import Optional


class JSONFormatter(logging.Formatter):
    """Structured JSON logging for production (easy to parse by log aggregators)."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "booking_id", None):
            log_data["booking_id"] = record.booking_id
        if getattr(record, "user_id", None):
            log_data["user_id"] = record.user_id
        if getattr(record, "event", None):
            log_data["event"] = record.event
        if getattr(record, "extra_data", None):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable colored console output for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)

        context_parts = []
        booking_id = getattr(record, "booking_id", None)
        user_id = getattr(record, "user_id", None)
        event = getattr(record, "event", None)

        if booking_id:
            context_parts.append(f"Booking:{booking_id}")
        if user_id:
            context_parts.append(f"User:{user_id}")
        if event:
            context_parts.append(f"Event:{event}")

        context = f" [{', '.join(context_parts)}]" if context_parts else ""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        message = f"{color}[{timestamp}] {record.levelname:8}{self.RESET}{context} {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class RequestContextFilter(logging.Filter):
    """Filter that adds default values for request context fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "booking_id"):
            record.booking_id = ""
        if not hasattr(record, "user_id"):
            record.user_id = ""
        if not hasattr(record, "event"):
            record.event = ""
        if not hasattr(record, "extra_data"):
            record.extra_data = None
        return True


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)
        log_file: Optional file path to write logs

    Returns:
        Configured root logger for the app
    """
    logger = logging.getLogger("servicehub")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    logger.handlers.clear()

    # Child loggers propagate here without passing through this logger's filters,
    # so the context defaults are installed on the handlers.
    context_filter = RequestContextFilter()

    formatter = JSONFormatter() if json_format else ConsoleFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.DEBUG)
    console_handler.addFilter(context_filter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())  # Always JSON for files
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(context_filter)
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
_LOG_FORMAT_JSON = os.getenv("LOG_FORMAT", "console").lower() == "json"
_LOG_FILE = os.getenv("LOG_FILE", None)

_root_logger = setup_logging(
    log_level=_LOG_LEVEL,
    json_format=_LOG_FORMAT_JSON,
    log_file=_LOG_FILE
)


def get_logger(name: str = "") -> logging.Logger:
    """
    Get a child logger with the given name.

    Args:
        name: Logger name suffix (e.g., "bookings", "ledger", "db")

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"servicehub.{name}")
    return logging.getLogger("servicehub")


# =============================================================================
# Convenience functions for structured logging
# =============================================================================

def log_state_change(booking_id, from_status: str, to_status: str, **extra_data):
    """Log booking state machine transitions."""
    logger = get_logger("state")
    logger.info(
        f"Booking {booking_id}: {from_status} -> {to_status}",
        extra={"booking_id": booking_id, "extra_data": extra_data or None}
    )


def log_points_awarded(user_id, delta: int, source: str, new_total: int):
    """Log a ledger movement."""
    logger = get_logger("ledger")
    sign = "+" if delta >= 0 else ""
    logger.info(
        f"{sign}{delta} points ({source}), balance {new_total}",
        extra={"user_id": user_id, "event": source}
    )


def log_error(context: str, error: Exception, booking_id=None, user_id=None, event: str = ""):
    """
    Log errors with full context.

    Args:
        context: What was happening when the error occurred
        error: The exception
        booking_id: Booking involved, if any
        user_id: User involved, if any
        event: Gamification event or notification kind, if any
    """
    logger = get_logger("error")
    logger.error(
        f"{context}: {type(error).__name__}: {error}",
        extra={"booking_id": booking_id or "", "user_id": user_id or "", "event": event},
        exc_info=True,
    )


def log_db_operation(operation: str, table: str, success: bool = True, **extra_data):
    """Log database operations."""
    logger = get_logger("db")
    status = "ok" if success else "failed"
    logger.debug(
        f"{operation} on {table}: {status}",
        extra={"extra_data": extra_data or None}
    )


def log_external_service(service: str, operation: str, success: bool = True, **extra_data):
    """Log external service calls (SendGrid, etc.)."""
    logger = get_logger("external")
    status = "ok" if success else "failed"
    logger.info(
        f"{service}: {operation} {status}",
        extra={"extra_data": extra_data or None}
    )
