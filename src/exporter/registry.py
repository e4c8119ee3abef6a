"""
Metric Registry for Table Row Counts

Owns the Prometheus series published by the exporter: one row count gauge per
table, the scrape error counter and scrape health series. Series live in a
CollectorRegistry owned by this instance rather than the process-global
default registry.
"""

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from prometheus_client.metrics_core import Metric

from src.exporter.models import MetricEntry, TableCount, TableRef

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "pg_count_exporter"


class MetricRegistry:
    """
    Tracks the currently published row count of every table.

    Every mutation is applied to the underlying gauge immediately. The
    registry lock is re-entrant; holding it through ``reconciling()`` keeps
    ``render()`` and ``snapshot()`` from observing a half-applied cycle.
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        registry: Optional[CollectorRegistry] = None
    ):
        """
        Initialize the metric registry.

        Args:
            namespace: Metric name prefix
            registry: Prometheus registry (a fresh one is created if not provided)
        """
        self.namespace = namespace
        self.collector_registry = registry or CollectorRegistry()
        self._entries: Dict[TableRef, MetricEntry] = {}
        self._lock = threading.RLock()

        self.row_count = Gauge(
            f"{namespace}_row_count",
            "Number of rows in the table",
            ["schema", "table"],
            registry=self.collector_registry
        )

        self.scrape_errors_total = Counter(
            f"{namespace}_scrape_errors_total",
            "Total number of database errors seen while scraping, by error code",
            ["code"],
            registry=self.collector_registry
        )

        self.last_scrape_success = Gauge(
            f"{namespace}_last_scrape_success",
            "Whether the last scrape cycle discovered tables successfully (1=yes, 0=no)",
            registry=self.collector_registry
        )

        self.last_scrape_timestamp_seconds = Gauge(
            f"{namespace}_last_scrape_timestamp_seconds",
            "Unix time at which the last scrape cycle finished",
            registry=self.collector_registry
        )

        self.scrape_duration_seconds = Histogram(
            f"{namespace}_scrape_duration_seconds",
            "Duration of scrape cycles in seconds",
            buckets=[0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 120, 300],
            registry=self.collector_registry
        )

        self.tracked_tables = Gauge(
            f"{namespace}_tracked_tables",
            "Number of tables with a published row count",
            registry=self.collector_registry
        )

        logger.info(f"MetricRegistry initialized with namespace: {namespace}")

    @contextmanager
    def reconciling(self) -> Iterator["MetricRegistry"]:
        """Hold the registry lock while a cycle applies its results."""
        with self._lock:
            yield self

    def upsert(self, ref: TableRef, count: float) -> MetricEntry:
        """
        Publish a row count, creating the series if it does not exist.

        Args:
            ref: Table the count belongs to
            count: Observed row count

        Returns:
            The tracked entry
        """
        now = datetime.now(timezone.utc)

        with self._lock:
            entry = self._entries.get(ref)
            if entry is None:
                entry = MetricEntry(ref=ref, count=count, last_updated=now)
                self._entries[ref] = entry
                logger.debug(f"Created row count series for {ref}")
            else:
                entry.count = count
                entry.last_updated = now

            self.row_count.labels(schema=ref.schema, table=ref.table).set(count)
            self.tracked_tables.set(len(self._entries))

        return entry

    def evict(self, ref: TableRef) -> bool:
        """
        Remove the series of a table. Does nothing if it is not tracked.

        Args:
            ref: Table to remove

        Returns:
            True if a series was removed
        """
        with self._lock:
            if self._entries.pop(ref, None) is None:
                return False

            self.row_count.remove(ref.schema, ref.table)
            self.tracked_tables.set(len(self._entries))

        logger.info(f"Evicted row count series for {ref}")
        return True

    def sweep(self, current_refs: Iterable[TableRef]) -> List[TableRef]:
        """
        Evict every tracked table that is not in current_refs.

        Args:
            current_refs: Tables found by the latest discovery

        Returns:
            Evicted table refs
        """
        current = set(current_refs)

        with self._lock:
            stale = sorted(ref for ref in self._entries if ref not in current)
            for ref in stale:
                self.evict(ref)

        return stale

    def clear_all(self) -> int:
        """
        Evict every tracked series.

        Returns:
            Number of evicted series
        """
        with self._lock:
            evicted = len(self._entries)
            self._entries.clear()
            self.row_count.clear()
            self.tracked_tables.set(0)

        logger.warning(f"Cleared all {evicted} row count series")
        return evicted

    def record_error(self, code: str) -> None:
        """Increment the scrape error counter for an error code."""
        self.scrape_errors_total.labels(code=code).inc()

    def record_scrape(self, success: bool, duration_seconds: float) -> None:
        """
        Record the outcome of a scrape cycle.

        Args:
            success: Whether table discovery succeeded
            duration_seconds: Duration of the cycle
        """
        self.last_scrape_success.set(1 if success else 0)
        self.last_scrape_timestamp_seconds.set(time.time())
        self.scrape_duration_seconds.observe(duration_seconds)

    def refs(self) -> List[TableRef]:
        """Return the tracked table refs, sorted."""
        with self._lock:
            return sorted(self._entries)

    def get_entry(self, ref: TableRef) -> Optional[MetricEntry]:
        """Return the tracked entry for a table, if any."""
        with self._lock:
            return self._entries.get(ref)

    def get_error_count(self, code: str) -> float:
        """Return the scrape error counter value for a code (0 if never seen)."""
        value = self.collector_registry.get_sample_value(
            f"{self.namespace}_scrape_errors_total", {"code": code}
        )
        return value or 0.0

    def snapshot(self) -> List[TableCount]:
        """
        Return the currently published row counts.

        Returns:
            Row counts sorted by table ref
        """
        with self._lock:
            return [
                TableCount(ref=entry.ref, count=entry.count, observed_at=entry.last_updated)
                for _, entry in sorted(self._entries.items())
            ]

    def collect(self) -> List[Metric]:
        """Return every metric family as one consistent snapshot."""
        with self._lock:
            return list(self.collector_registry.collect())

    def render(self) -> bytes:
        """Serialize all series in the Prometheus text exposition format."""
        with self._lock:
            return generate_latest(self.collector_registry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, ref: TableRef) -> bool:
        with self._lock:
            return ref in self._entries
