"""
Exporter Application

Wires the query executor, scrape orchestrator, refresh loop and metrics
server together from an ExporterConfig.
"""

import logging
import threading
from typing import Optional

from src.database.executor import PostgresQueryExecutor
from src.exporter.coordinator import ScrapeCoordinator
from src.exporter.counter import RowCounter
from src.exporter.discovery import TableDiscovery, compile_ignore_pattern
from src.exporter.refresh import RefreshLoop
from src.exporter.registry import MetricRegistry
from src.monitoring.server import MetricsServer
from src.utils.config import ExporterConfig

logger = logging.getLogger(__name__)


class CountExporter:
    """
    The running exporter.

    Example usage:
        exporter = CountExporter(config)
        exporter.start()
        ...
        exporter.stop()
    """

    def __init__(self, config: ExporterConfig, executor=None):
        """
        Build all components.

        Args:
            config: Validated configuration
            executor: Query executor to use instead of a PostgresQueryExecutor
        """
        self.config = config
        self.executor = executor or PostgresQueryExecutor(
            config.dsn,
            max_connections=config.max_connections
        )
        self.registry = MetricRegistry()
        self.coordinator = ScrapeCoordinator(
            TableDiscovery(self.executor, ignore=compile_ignore_pattern(config.ignore_pattern)),
            RowCounter(self.executor),
            self.registry,
            max_workers=config.max_connections,
            failure_threshold=config.failure_threshold
        )
        self.server = MetricsServer(
            self.registry,
            coordinator=self.coordinator,
            listen_address=config.listen_address,
            metrics_path=config.metrics_path,
            scrape_on_pull=config.scrape_on_pull
        )
        self.loop: Optional[RefreshLoop] = None
        if not config.scrape_on_pull:
            self.loop = RefreshLoop(self.coordinator, config.refresh_interval)

        self._stopped = threading.Event()

    def start(self) -> None:
        """
        Bind the metrics server, then start refreshing.

        Raises:
            OSError: If the listen address cannot be bound
        """
        self.server.start()
        if self.loop is not None:
            self.loop.start()

        logger.info(f"Exporter started: {self.config.describe()}")

    def stop(self) -> None:
        """Stop refreshing and serving, abandoning in-flight counts."""
        if self._stopped.is_set():
            return
        self._stopped.set()

        if self.loop is not None:
            self.loop.stop()
        self.server.stop()
        self.coordinator.shutdown(wait=False)
        self.executor.close()
        logger.info("Exporter stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() has been called. Returns False on timeout."""
        return self._stopped.wait(timeout)
