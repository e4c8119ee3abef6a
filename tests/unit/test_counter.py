"""
Unit tests for the row counter.
"""

import pytest
from unittest.mock import Mock
from psycopg2 import sql

from src.exporter.counter import RowCounter, build_count_query
from src.exporter.errors import (
    CountError,
    ErrorKind,
    MissingTable,
    QueryExecutionError,
)
from src.exporter.models import TableRef


class TestBuildCountQuery:
    """Test count query construction."""

    def test_identifiers_are_quoted_separately(self):
        """Test that schema and table are passed as identifiers."""
        query = build_count_query(TableRef("Sales", 'odd"name'))

        identifiers = [part for part in query.seq if isinstance(part, sql.Identifier)]
        assert [i.string for i in identifiers] == ["Sales", 'odd"name']


class TestRowCounter:
    """Test suite for RowCounter."""

    def test_count_returns_float(self, fake_executor):
        """Test that counts are returned as floats."""
        counter = RowCounter(fake_executor)

        assert counter.count(TableRef("a", "t1")) == 5.0
        assert isinstance(counter.count(TableRef("a", "t2")), float)

    def test_count_issues_exactly_one_query(self, fake_executor):
        """Test that counting is a single query."""
        RowCounter(fake_executor).count(TableRef("a", "t1"))

        assert fake_executor.scalar_calls == 1

    def test_missing_table(self, fake_executor):
        """Test that undefined relations raise MissingTable."""
        with pytest.raises(MissingTable) as exc_info:
            RowCounter(fake_executor).count(TableRef("a", "gone"))

        assert exc_info.value.code == "42P01"

    def test_generic_error(self):
        """Test that other errors raise CountError with their code."""
        executor = Mock()
        executor.query_scalar.side_effect = QueryExecutionError(ErrorKind.QUERY, "57014")

        with pytest.raises(CountError) as exc_info:
            RowCounter(executor).count(TableRef("a", "t1"))

        assert not isinstance(exc_info.value, MissingTable)
        assert exc_info.value.code == "57014"

    def test_connectivity_error_is_count_error(self):
        """Test that losing the connection mid-cycle is a per-table error."""
        executor = Mock()
        executor.query_scalar.side_effect = QueryExecutionError(ErrorKind.CONNECTIVITY, "connection")

        with pytest.raises(CountError) as exc_info:
            RowCounter(executor).count(TableRef("a", "t1"))

        assert exc_info.value.code == "connection"
        executor.query_scalar.assert_called_once()
