"""Structured logging configuration for docpipe."""

import logging
import os
import sys
from typing import Any


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        if hasattr(record, "doc_id"):
            log_data["doc_id"] = record.doc_id

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        return " ".join(parts)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        level_name = os.environ.get("DOCPIPE_LOG_LEVEL", "")
        if level_name:
            logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))
        elif os.environ.get("DOCPIPE_ENV") == "dev":
            logger.setLevel(logging.DEBUG)
        else:
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (e.g., doc_id)
    """
    extra = {"extra_data": kwargs}
    if "doc_id" in kwargs:
        extra["doc_id"] = kwargs.pop("doc_id")
        extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)
