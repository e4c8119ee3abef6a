"""
Logging Setup for the Row Count Exporter

Configures a human-readable console handler and, optionally, a structured
JSON handler carrying the scrape cycle correlation ID.
"""

import json
import logging
from datetime import datetime, timezone

from src.utils.correlation import correlation_id_filter

EXTRA_FIELDS = ("schema", "table", "code", "duration")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with scrape cycle correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'N/A'),
            'thread': record.threadName,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(level: str = "INFO", json_logging: bool = False) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Log level name
        json_logging: Emit JSON lines instead of plain text

    Returns:
        The root logger
    """
    handler = logging.StreamHandler()
    handler.addFilter(correlation_id_filter)

    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(correlation_id)s] %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    return root
