"""
Table Discovery

Lists the (schema, table) pairs to count by querying the PostgreSQL catalog.
System schemas are always excluded; an optional ignore pattern drops further
tables.
"""

import logging
import re
from typing import Callable, List, Optional

from src.exporter.errors import (
    ConnectivityError,
    ErrorKind,
    QueryError,
    QueryExecutionError,
)
from src.exporter.models import TableRef

logger = logging.getLogger(__name__)

SYSTEM_SCHEMAS = ("pg_catalog", "information_schema")

LIST_TABLES_QUERY = """
    SELECT table_schema, table_name
    FROM information_schema.tables
    WHERE table_type = 'BASE TABLE'
      AND table_schema NOT IN %s
      AND table_schema NOT LIKE 'pg\\_toast%%'
      AND table_schema NOT LIKE 'pg\\_temp\\_%%'
    ORDER BY table_schema, table_name
"""

IgnorePredicate = Callable[[TableRef], bool]


def compile_ignore_pattern(pattern: Optional[str]) -> Optional[IgnorePredicate]:
    """
    Compile an ignore pattern into a predicate over table refs.

    The pattern is searched in ``schema.table``. An empty or missing pattern
    disables ignoring.

    Args:
        pattern: Regular expression, or None

    Returns:
        Predicate returning True for tables to ignore, or None

    Raises:
        re.error: If the pattern is not a valid regular expression
    """
    if not pattern:
        return None

    regex = re.compile(pattern)

    def is_ignored(ref: TableRef) -> bool:
        return regex.search(ref.qualified_name) is not None

    return is_ignored


class TableDiscovery:
    """Discovers countable tables through a query executor."""

    def __init__(self, executor, ignore: Optional[IgnorePredicate] = None):
        """
        Initialize table discovery.

        Args:
            executor: Query executor exposing query_rows()
            ignore: Optional predicate selecting tables to skip
        """
        self.executor = executor
        self.ignore = ignore

    def discover(self) -> List[TableRef]:
        """
        List all user tables that are not ignored.

        Returns:
            Table refs ordered by schema and table name (may be empty)

        Raises:
            ConnectivityError: If the database cannot be reached
            QueryError: If the catalog query fails
        """
        try:
            rows = self.executor.query_rows(LIST_TABLES_QUERY, (SYSTEM_SCHEMAS,))
        except QueryExecutionError as e:
            logger.error(f"Error listing tables: {e}")
            if e.kind == ErrorKind.CONNECTIVITY:
                raise ConnectivityError(e.code, str(e)) from e
            raise QueryError(e.code, str(e)) from e

        tables = []
        for schema, table in rows:
            ref = TableRef(schema=schema, table=table)
            if self.ignore is not None and self.ignore(ref):
                logger.debug(f"Ignoring table {ref}")
                continue
            tables.append(ref)

        logger.debug(f"Discovered {len(tables)} tables ({len(rows) - len(tables)} ignored)")
        return tables
