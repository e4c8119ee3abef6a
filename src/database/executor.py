"""
PostgreSQL Query Executor

Runs catalog and count queries over a bounded psycopg2 connection pool.
Callers beyond the configured connection limit wait for a free connection
instead of opening new ones.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

import psycopg2
from psycopg2 import errorcodes
from psycopg2.pool import PoolError, ThreadedConnectionPool

from src.exporter.errors import ErrorKind, QueryExecutionError

logger = logging.getLogger(__name__)

# SQLSTATEs meaning the counted relation is gone
MISSING_RELATION_CODES = frozenset({
    errorcodes.UNDEFINED_TABLE,
    errorcodes.INVALID_SCHEMA_NAME,
})

CONNECTIVITY_CODE = "connection"


def classify_error(error: psycopg2.Error) -> QueryExecutionError:
    """
    Convert a psycopg2 error into a QueryExecutionError.

    Args:
        error: Error raised by the driver or the pool

    Returns:
        QueryExecutionError tagged with an ErrorKind and code
    """
    code = getattr(error, "pgcode", None)
    message = str(error).strip() or type(error).__name__

    if code in MISSING_RELATION_CODES:
        return QueryExecutionError(ErrorKind.UNDEFINED_RELATION, code, message)

    # Class 08 is "connection exception"
    if code and code.startswith("08"):
        return QueryExecutionError(ErrorKind.CONNECTIVITY, code, message)

    if code is None and isinstance(
        error, (psycopg2.OperationalError, psycopg2.InterfaceError, PoolError)
    ):
        return QueryExecutionError(ErrorKind.CONNECTIVITY, CONNECTIVITY_CODE, message)

    return QueryExecutionError(ErrorKind.QUERY, code or "unknown", message)


class PostgresQueryExecutor:
    """
    Executes queries against PostgreSQL using a shared connection pool.

    The pool is created on first use, so the executor can be built while the
    database is unreachable. Up to max_connections connections are kept open
    between queries. Connections that fail with a connection-level error are
    discarded and re-established on the next checkout.
    """

    def __init__(
        self,
        dsn: str,
        max_connections: int = 1,
        connect_timeout: int = 10
    ):
        """
        Initialize the executor.

        Args:
            dsn: libpq connection string or URI
            max_connections: Maximum number of concurrently open connections
            connect_timeout: Seconds to wait when opening a connection

        Raises:
            ValueError: If max_connections is less than 1
        """
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")

        self.dsn = dsn
        self.max_connections = max_connections
        self.connect_timeout = connect_timeout
        self._slots = threading.BoundedSemaphore(max_connections)
        self._pool_lock = threading.Lock()
        self._pool: Optional[ThreadedConnectionPool] = None
        self._closed = False

        logger.info(f"PostgresQueryExecutor initialized (max_connections={max_connections})")

    def _get_pool(self) -> ThreadedConnectionPool:
        """Return the connection pool, creating it on first use."""
        with self._pool_lock:
            if self._closed:
                raise PoolError("connection pool is closed")

            if self._pool is None:
                # minconn == maxconn keeps returned connections open for reuse
                self._pool = ThreadedConnectionPool(
                    self.max_connections,
                    self.max_connections,
                    self.dsn,
                    connect_timeout=self.connect_timeout
                )
                logger.info(f"Opened {self.max_connections} PostgreSQL connection(s)")

            return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Check out a pooled connection in autocommit mode.

        Blocks while all max_connections connections are in use.

        Yields:
            psycopg2 connection
        """
        with self._slots:
            pool = self._get_pool()
            conn = pool.getconn()
            broken = False
            try:
                if not conn.autocommit:
                    conn.autocommit = True
                yield conn
            except (psycopg2.OperationalError, psycopg2.InterfaceError):
                broken = True
                raise
            finally:
                pool.putconn(conn, close=broken or bool(conn.closed))

    def query_rows(self, query, params: Optional[tuple] = None) -> List[tuple]:
        """
        Execute a query and return all rows.

        Args:
            query: SQL string or psycopg2.sql.Composable
            params: Optional query parameters

        Returns:
            List of row tuples

        Raises:
            QueryExecutionError: If the query fails
        """
        try:
            with self.connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params)
                    return cursor.fetchall()
        except psycopg2.Error as e:
            raise classify_error(e) from e

    def query_scalar(self, query, params: Optional[tuple] = None) -> Any:
        """
        Execute a query and return the first column of the first row.

        Args:
            query: SQL string or psycopg2.sql.Composable
            params: Optional query parameters

        Returns:
            Scalar value, or None if the query returned no rows

        Raises:
            QueryExecutionError: If the query fails
        """
        try:
            with self.connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query, params)
                    row = cursor.fetchone()
                    return row[0] if row else None
        except psycopg2.Error as e:
            raise classify_error(e) from e

    def close(self) -> None:
        """Close all pooled connections. Later queries fail as connectivity errors."""
        with self._pool_lock:
            self._closed = True
            pool, self._pool = self._pool, None

        if pool is not None and not pool.closed:
            pool.closeall()
            logger.info("PostgresQueryExecutor connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
