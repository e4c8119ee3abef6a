"""
Monitoring Module for the Row Count Exporter

This module provides the outward-facing observability components:
- The HTTP server exposing row count metrics to Prometheus
- Alert rule definitions for the exporter's series

Usage:
    from src.monitoring import MetricsServer, AlertRuleGenerator

    # Serve metrics
    server = MetricsServer(registry, listen_address=":9557")
    server.start()

    # Generate alert rules
    alerts = AlertRuleGenerator()
    rules = alerts.generate_alert_rules()
"""

from src.monitoring.alerts import AlertRuleGenerator
from src.monitoring.server import MetricsServer, parse_listen_address

__all__ = [
    "MetricsServer",
    "parse_listen_address",
    "AlertRuleGenerator",
]

__version__ = "1.0.0"
