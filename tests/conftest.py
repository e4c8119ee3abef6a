"""
Pytest configuration and shared fixtures.

Provides a fake query executor so the scrape orchestrator can be tested
without a database, and a fresh metric registry per test.
"""

import threading

import pytest
from psycopg2 import sql

from src.exporter.errors import ErrorKind, QueryExecutionError
from src.exporter.registry import MetricRegistry


def ref_from_count_query(query) -> str:
    """Return ``schema.table`` from a query built by build_count_query()."""
    identifiers = [part.string for part in query.seq if isinstance(part, sql.Identifier)]
    return ".".join(identifiers)


class FakeQueryExecutor:
    """
    In-memory stand-in for PostgresQueryExecutor.

    Attributes:
        tables: Rows returned by the discovery query as (schema, table)
        counts: Row count (or QueryExecutionError to raise) by ``schema.table``
        discovery_error: Error raised by query_rows() when set
    """

    def __init__(self, counts=None):
        self.counts = dict(counts or {})
        self.tables = [tuple(name.split(".", 1)) for name in self.counts]
        self.discovery_error = None
        self.rows_calls = 0
        self.scalar_calls = 0
        self.closed = False
        self._lock = threading.Lock()

    def set_counts(self, counts):
        self.counts = dict(counts)
        self.tables = [tuple(name.split(".", 1)) for name in self.counts]

    def query_rows(self, query, params=None):
        with self._lock:
            self.rows_calls += 1
        if self.discovery_error is not None:
            raise self.discovery_error
        return list(self.tables)

    def query_scalar(self, query, params=None):
        with self._lock:
            self.scalar_calls += 1
        name = ref_from_count_query(query)
        if name not in self.counts:
            raise QueryExecutionError(ErrorKind.UNDEFINED_RELATION, "42P01", f"relation {name} does not exist")
        value = self.counts[name]
        if isinstance(value, Exception):
            raise value
        return value

    def close(self):
        self.closed = True


@pytest.fixture
def fake_executor():
    """Fake executor with two tables in schema ``a``."""
    return FakeQueryExecutor({"a.t1": 5, "a.t2": 0})


@pytest.fixture
def registry():
    """Create a MetricRegistry backed by its own CollectorRegistry."""
    return MetricRegistry()


@pytest.fixture
def executor_factory():
    """Return the FakeQueryExecutor class for tests that need custom tables."""
    return FakeQueryExecutor
