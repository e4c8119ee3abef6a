"""
Row Count Exporter Core

This module provides the scrape orchestrator that keeps a set of Prometheus
gauges in line with the row counts of PostgreSQL tables:
- Table discovery over the database catalog
- Per-table row counting
- A metric registry holding the latest count per table
- A scrape coordinator with deduplicated cycles
- A refresh loop repeating cycles on an interval

Usage:
    from src.database import PostgresQueryExecutor
    from src.exporter import (
        MetricRegistry, RefreshLoop, RowCounter, ScrapeCoordinator, TableDiscovery
    )

    executor = PostgresQueryExecutor(dsn, max_connections=4)
    registry = MetricRegistry()
    coordinator = ScrapeCoordinator(
        TableDiscovery(executor),
        RowCounter(executor),
        registry,
        max_workers=4
    )
    RefreshLoop(coordinator, interval_seconds=60).start()
"""

from src.exporter.coordinator import ScrapeCoordinator
from src.exporter.counter import RowCounter
from src.exporter.discovery import TableDiscovery, compile_ignore_pattern
from src.exporter.errors import (
    ConfigurationError,
    ConnectivityError,
    CountError,
    ErrorKind,
    ExporterError,
    MissingTable,
    QueryError,
    QueryExecutionError,
    ScrapeError,
)
from src.exporter.models import MetricEntry, ScrapeResult, TableCount, TableRef
from src.exporter.refresh import LoopState, RefreshLoop
from src.exporter.registry import MetricRegistry

__all__ = [
    "ScrapeCoordinator",
    "RowCounter",
    "TableDiscovery",
    "compile_ignore_pattern",
    "MetricRegistry",
    "RefreshLoop",
    "LoopState",
    "TableRef",
    "TableCount",
    "MetricEntry",
    "ScrapeResult",
    "ExporterError",
    "ConfigurationError",
    "ErrorKind",
    "QueryExecutionError",
    "ScrapeError",
    "ConnectivityError",
    "QueryError",
    "CountError",
    "MissingTable",
]

__version__ = "1.0.0"
