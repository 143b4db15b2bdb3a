"""
Structured Logging Configuration Module

JSON-formatted structured logging for loan, schedule and payment operations.
Child loggers (``loan_servicing.allocation`` etc.) inherit the handler
installed on the root ``loan_servicing`` logger.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


ROOT_LOGGER = "loan_servicing"

_CONTEXT_FIELDS = ("correlation_id", "client_id", "loan_id", "action", "resource")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field_name in _CONTEXT_FIELDS:
            log_entry[field_name] = getattr(record, field_name, None)
        log_entry["extra"] = getattr(record, "extra", None)

        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain text formatter that appends context fields as key=value pairs"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        context = [
            f"{field_name}={getattr(record, field_name)}"
            for field_name in _CONTEXT_FIELDS
            if getattr(record, field_name, None) is not None
        ]
        if context:
            line = f"{line} [{' '.join(context)}]"
        return line


def setup_logging(level: str = "INFO", log_format: str = "json",
                  logger_name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" or "text"
        logger_name: Name of the logger

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if log_format == "text":
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JSONFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, client_id: Optional[str] = None,
               loan_id: Optional[str] = None, resource: Optional[str] = None,
               correlation_id: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log an action with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        action: Action being performed (e.g. "payment.allocate")
        client_id: Client the action concerns
        loan_id: Loan the action concerns
        resource: Resource being acted upon
        correlation_id: Correlation ID for request tracing
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, __name__, 0, message, (), None
    )

    context = {
        "action": action,
        "client_id": client_id,
        "loan_id": loan_id,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    for key, value in context.items():
        if value is not None:
            setattr(record, key, value)

    logger.handle(record)
