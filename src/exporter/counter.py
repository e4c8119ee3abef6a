"""
Row Counter

Counts the rows of one table with a single COUNT(*) query.
"""

import logging

from psycopg2 import sql

from src.exporter.errors import (
    CountError,
    ErrorKind,
    MissingTable,
    QueryExecutionError,
)
from src.exporter.models import TableRef

logger = logging.getLogger(__name__)


def build_count_query(ref: TableRef) -> sql.Composed:
    """Build ``SELECT COUNT(*) FROM "schema"."table"`` with quoted identifiers."""
    return sql.SQL("SELECT COUNT(*) FROM {}.{}").format(
        sql.Identifier(ref.schema),
        sql.Identifier(ref.table),
    )


class RowCounter:
    """Counts table rows through a query executor. Never retries."""

    def __init__(self, executor):
        """
        Initialize the row counter.

        Args:
            executor: Query executor exposing query_scalar()
        """
        self.executor = executor

    def count(self, ref: TableRef) -> float:
        """
        Count rows in a table.

        Args:
            ref: Table to count

        Returns:
            Number of rows

        Raises:
            MissingTable: If the table or its schema does not exist
            CountError: For any other database error
        """
        try:
            value = self.executor.query_scalar(build_count_query(ref))
        except QueryExecutionError as e:
            if e.kind == ErrorKind.UNDEFINED_RELATION:
                raise MissingTable(e.code, f"{ref} no longer exists") from e
            raise CountError(e.code, f"error counting rows of {ref}: {e}") from e

        return float(value or 0)
