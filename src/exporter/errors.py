"""
Error Taxonomy for the Row Count Exporter

Errors raised at the query-executor boundary carry an explicit error kind so
that discovery and counting can classify failures without knowing how the
database driver represents them.
"""

from enum import Enum
from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(ExporterError):
    """Raised when the exporter configuration is invalid. Fatal at startup."""


class ErrorKind(str, Enum):
    """Classification attached to every query failure."""

    CONNECTIVITY = "connectivity"
    UNDEFINED_RELATION = "undefined_relation"
    QUERY = "query"


class QueryExecutionError(ExporterError):
    """
    Raised by a query executor when a statement fails.

    Attributes:
        kind: Error classification
        code: Machine-readable error code (SQLSTATE where available)
    """

    def __init__(self, kind: ErrorKind, code: str, message: Optional[str] = None):
        self.kind = kind
        self.code = code
        super().__init__(message or f"{kind.value} error ({code})")


class ScrapeError(ExporterError):
    """
    Base class for errors observed during a scrape cycle.

    Attributes:
        code: Error code used as the ``code`` label of the scrape error counter
    """

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code)


class ConnectivityError(ScrapeError):
    """The database could not be reached."""


class QueryError(ScrapeError):
    """The table discovery query failed."""


class CountError(ScrapeError):
    """Counting rows of a single table failed."""


class MissingTable(CountError):
    """The counted table (or its schema) no longer exists."""
