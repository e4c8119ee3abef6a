"""
Metrics Exposition Server

Serves the metric registry through prometheus_client's WSGI exposition app,
which negotiates the text or OpenMetrics format, gzip encoding and ``name[]``
filtering. In pull mode every collection first triggers a scrape cycle;
overlapping requests share the same cycle.
"""

import html
import logging
import socket
import threading
from typing import Optional, Tuple
from wsgiref.simple_server import WSGIRequestHandler, make_server

from prometheus_client import CollectorRegistry, generate_latest, make_wsgi_app
from prometheus_client.exposition import ThreadingWSGIServer
from prometheus_client.registry import Collector

logger = logging.getLogger(__name__)

LANDING_PAGE = """<html>
<head><title>PostgreSQL Row Count Exporter</title></head>
<body>
<h1>PostgreSQL Row Count Exporter</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    Args:
        address: ``host:port`` or ``:port`` (all interfaces)

    Returns:
        (host, port) tuple

    Raises:
        ValueError: If the address has no valid port
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r} (expected host:port)")

    port_number = int(port)
    if not 0 <= port_number <= 65535:
        raise ValueError(f"Invalid port in listen address: {address!r}")

    return host.strip("[]"), port_number


class RowCountCollector(Collector):
    """
    Publishes the series of a MetricRegistry.

    ``describe()`` returns the families without scraping so the exposition
    registry can index them for ``name[]`` filtering.
    """

    def __init__(self, registry, coordinator=None, scrape_on_pull: bool = False):
        self.registry = registry
        self.coordinator = coordinator
        self.scrape_on_pull = scrape_on_pull

    def describe(self):
        return self.registry.collect()

    def collect(self):
        if self.scrape_on_pull:
            self.coordinator.scrape_once()
        return self.registry.collect()


class _LoggingRequestHandler(WSGIRequestHandler):
    """Sends access log lines to the module logger at debug level."""

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def _server_class(host: str):
    family = socket.AF_INET6 if ":" in host else socket.AF_INET

    class _Server(ThreadingWSGIServer):
        address_family = family

    return _Server


class MetricsServer:
    """
    HTTP server exposing the row count metrics.

    Example usage:
        server = MetricsServer(registry, listen_address=":9557")
        server.start()
    """

    def __init__(
        self,
        registry,
        coordinator=None,
        listen_address: str = ":9557",
        metrics_path: str = "/metrics",
        scrape_on_pull: bool = False
    ):
        """
        Initialize the server.

        Args:
            registry: MetricRegistry to serve
            coordinator: ScrapeCoordinator, required when scrape_on_pull is set
            listen_address: ``host:port`` to bind
            metrics_path: Path under which metrics are exposed
            scrape_on_pull: Run a (deduplicated) scrape for every metrics request

        Raises:
            ValueError: If scrape_on_pull is set without a coordinator
        """
        if scrape_on_pull and coordinator is None:
            raise ValueError("scrape_on_pull requires a coordinator")

        self.registry = registry
        self.coordinator = coordinator
        self.listen_address = listen_address
        self.metrics_path = metrics_path
        self.scrape_on_pull = scrape_on_pull

        self.exposition_registry = CollectorRegistry()
        self.exposition_registry.register(
            RowCountCollector(registry, coordinator, scrape_on_pull)
        )
        self._metrics_app = make_wsgi_app(self.exposition_registry)

        self._httpd: Optional[ThreadingWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port), available once started."""
        if self._httpd is None:
            return None
        return self._httpd.server_address[:2]

    def render(self) -> bytes:
        """Return the text exposition body one metrics request would see."""
        return generate_latest(self.exposition_registry)

    def app(self, environ, start_response):
        """WSGI entry point routing the metrics path, the landing page and 404s."""
        path = environ.get("PATH_INFO") or "/"

        if path == self.metrics_path:
            return self._metrics_app(environ, start_response)

        if path == "/":
            body = LANDING_PAGE.format(path=html.escape(self.metrics_path)).encode("utf-8")
            start_response("200 OK", [
                ("Content-Type", "text/html; charset=utf-8"),
                ("Content-Length", str(len(body))),
            ])
            return [body]

        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"Not Found\n"]

    def start(self) -> None:
        """
        Bind the listen address and serve in a daemon thread.

        Raises:
            OSError: If the address cannot be bound
        """
        host, port = parse_listen_address(self.listen_address)
        self._httpd = make_server(
            host,
            port,
            self.app,
            server_class=_server_class(host),
            handler_class=_LoggingRequestHandler
        )

        self._thread = threading.Thread(
            target=self._httpd.serve_forever,
            daemon=True,
            name="MetricsServer"
        )
        self._thread.start()

        bound_host, bound_port = self.server_address
        logger.info(f"Metrics server listening on {bound_host or '0.0.0.0'}:{bound_port}{self.metrics_path}")

    def stop(self) -> None:
        """Stop serving and release the socket."""
        if self._httpd is None:
            return

        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)

        self._httpd = None
        self._thread = None
        logger.info("Metrics server stopped")
