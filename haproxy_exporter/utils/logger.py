"""Structured JSON logging configuration."""

import logging
import sys
from typing import Optional, TextIO

from pythonjsonlogger import jsonlogger

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Keys follow the Prometheus exporters' logfmt convention (ts, level, msg).
_RENAMED_FIELDS = {
    "asctime": "ts",
    "levelname": "level",
    "name": "caller",
    "message": "msg",
}


def setup_logger(
    name: str = "haproxy_exporter",
    level: str = "INFO",
    stream: Optional[TextIO] = None
) -> logging.Logger:
    """
    Configure structured JSON logging.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream, stdout when omitted

    Returns:
        logging.Logger: Configured logger instance

    Raises:
        ValueError: If the level name is unknown
    """
    if level.upper() not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    handler = logging.StreamHandler(stream or sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(message)s',
        rename_fields=_RENAMED_FIELDS,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger
