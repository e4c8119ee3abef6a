"""
Database Access for the Row Count Exporter

Provides the PostgreSQL query executor used by table discovery and row
counting. All driver errors are converted into QueryExecutionError with an
explicit ErrorKind at this boundary.
"""

from src.database.executor import PostgresQueryExecutor, classify_error

__all__ = [
    "PostgresQueryExecutor",
    "classify_error",
]
