"""Structured JSON logging configuration.

Provides centralized logging setup with operation ID correlation and JSON
formatting.
"""

import logging
import json
import sys
from datetime import datetime
from typing import Optional

from .request_id import get_operation_id

# Extra fields copied into JSON log lines when present on the record
_EXTRA_FIELDS = (
    "erp_order_id",
    "erp_order_number",
    "erp_customer_id",
    "local_customer_id",
    "order_state",
    "line_count",
    "reference_kind",
    "row_count",
    "pool_event",
    "server",
    "latency_ms",
    "error_category",
    "status",
    "error",
)


class OperationIDFilter(logging.Filter):
    """Add operation_id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add operation_id attribute to log record.

        Args:
            record: Log record to enhance

        Returns:
            bool: Always True (don't filter out records)
        """
        record.operation_id = get_operation_id()
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string.

        Args:
            record: Log record to format

        Returns:
            str: JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "operation_id": getattr(record, "operation_id", "no-operation-id"),
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        for field in _EXTRA_FIELDS:
            if hasattr(record, field) and field not in log_data:
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, use JSON formatter; otherwise use simple format
    """
    # Get root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    root_logger.handlers.clear()

    # Create console handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    # Set formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(operation_id)s - %(name)s.%(funcName)s - %(message)s'
        )

    handler.setFormatter(formatter)

    # Add operation ID filter
    handler.addFilter(OperationIDFilter())

    # Add handler to root logger
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def mask_value(value: Optional[str]) -> Optional[str]:
    """Mask a sensitive value for debug output, keeping first and last char."""
    if not value:
        return None
    if len(value) <= 2:
        return "*" * len(value)
    return f"{value[0]}{'*' * min(len(value) - 2, 6)}{value[-1]}"

