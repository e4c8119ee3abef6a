"""
Scrape Cycle Correlation IDs

Every scrape cycle runs under a correlation ID so that the log lines of one
cycle, including those emitted from counting worker threads, can be grouped.
"""

import contextvars
import logging
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'scrape_correlation_id',
    default=None
)


def generate_correlation_id() -> str:
    """
    Generate a new scrape cycle ID.

    Returns:
        12 hex characters taken from a UUID4
    """
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> Optional[str]:
    """Return the ID of the current scrape cycle, or None outside a cycle."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the scrape cycle ID in the current context.

    Raises:
        ValueError: If correlation_id is empty or not a string
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")

    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the scrape cycle ID from the current context."""
    _correlation_id.set(None)


class CorrelationContext:
    """
    Context manager that runs a block under a scrape cycle ID.

    The previous ID, if any, is restored on exit.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self) -> str:
        if not self.correlation_id:
            self.correlation_id = generate_correlation_id()

        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)
        self._token = None


def correlation_id_filter(record: logging.LogRecord) -> bool:
    """Logging filter adding ``correlation_id`` to every record."""
    record.correlation_id = get_correlation_id() or "N/A"
    return True
