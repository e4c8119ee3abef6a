"""
Alert Rule Generator for Prometheus AlertManager

Generates alert rule definitions for the series published by the row count
exporter: scrape health, scrape error rates and sudden row count changes.
"""

import logging
from typing import Any, Dict

import yaml

from src.exporter.registry import DEFAULT_NAMESPACE

logger = logging.getLogger(__name__)


class AlertRuleGenerator:
    """Generates Prometheus alert rules for the row count exporter."""

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        refresh_interval_seconds: float = 60,
        job: str = "pg-count-exporter"
    ):
        """
        Initialize alert rule generator.

        Args:
            namespace: Metric name prefix used by the exporter
            refresh_interval_seconds: Exporter refresh interval, used to
                decide when scrape results are stale
            job: Prometheus job name the exporter is scraped under
        """
        self.namespace = namespace
        self.refresh_interval_seconds = refresh_interval_seconds
        self.job = job

    def generate_alert_rules(self) -> Dict[str, Any]:
        """
        Generate complete alert rule configuration.

        Returns:
            Dict with alert rule groups in Prometheus format
        """
        groups = [
            self._generate_scrape_alerts(),
            self._generate_table_alerts(),
        ]

        logger.info(f"Generated {len(groups)} alert rule groups")
        return {"groups": groups}

    def _generate_scrape_alerts(self) -> Dict[str, Any]:
        """Generate alerts on the exporter's own scrape health."""
        ns = self.namespace
        # Three missed refreshes, with a floor for pull mode (interval 0)
        stale_after = max(int(self.refresh_interval_seconds * 3), 300)

        return {
            "name": f"{ns}_scrape",
            "interval": "30s",
            "rules": [
                {
                    "alert": "RowCountExporterDown",
                    "expr": f'up{{job="{self.job}"}} == 0',
                    "for": "5m",
                    "labels": {
                        "severity": "critical",
                        "component": "exporter"
                    },
                    "annotations": {
                        "summary": "Row count exporter is down",
                        "description": "Prometheus cannot scrape {{ $labels.instance }}"
                    }
                },
                {
                    "alert": "RowCountDiscoveryFailing",
                    "expr": f"{ns}_last_scrape_success == 0",
                    "for": "5m",
                    "labels": {
                        "severity": "warning",
                        "component": "discovery"
                    },
                    "annotations": {
                        "summary": "Table discovery is failing",
                        "description": "{{ $labels.instance }} cannot list tables; row counts are stale or cleared"
                    }
                },
                {
                    "alert": "RowCountScrapeStale",
                    "expr": f"time() - {ns}_last_scrape_timestamp_seconds > {stale_after}",
                    "for": "5m",
                    "labels": {
                        "severity": "warning",
                        "component": "refresh"
                    },
                    "annotations": {
                        "summary": "Row counts are not being refreshed",
                        "description": f"No scrape cycle finished on {{{{ $labels.instance }}}} in the last {stale_after}s"
                    }
                },
                {
                    "alert": "HighRowCountScrapeErrorRate",
                    "expr": f"rate({ns}_scrape_errors_total[5m]) > 0.1",
                    "for": "10m",
                    "labels": {
                        "severity": "warning",
                        "component": "counter"
                    },
                    "annotations": {
                        "summary": "High scrape error rate",
                        "description": "Database errors with code {{ $labels.code }} at {{ $value }} errors/sec"
                    }
                }
            ]
        }

    def _generate_table_alerts(self) -> Dict[str, Any]:
        """Generate alerts on the published row counts."""
        ns = self.namespace

        return {
            "name": f"{ns}_tables",
            "interval": "1m",
            "rules": [
                {
                    "alert": "NoTablesTracked",
                    "expr": f"{ns}_tracked_tables == 0",
                    "for": "15m",
                    "labels": {
                        "severity": "warning",
                        "component": "registry"
                    },
                    "annotations": {
                        "summary": "No row counts published",
                        "description": "{{ $labels.instance }} publishes no table row counts"
                    }
                },
                {
                    "alert": "TableEmptied",
                    "expr": f"{ns}_row_count == 0 and {ns}_row_count offset 1h > 0",
                    "for": "5m",
                    "labels": {
                        "severity": "warning",
                        "component": "table"
                    },
                    "annotations": {
                        "summary": "Table was emptied",
                        "description": "{{ $labels.schema }}.{{ $labels.table }} had rows an hour ago and is now empty"
                    }
                },
                {
                    "alert": "TableRowCountDropped",
                    "expr": f"{ns}_row_count < 0.5 * ({ns}_row_count offset 1h)",
                    "for": "10m",
                    "labels": {
                        "severity": "info",
                        "component": "table"
                    },
                    "annotations": {
                        "summary": "Table row count dropped sharply",
                        "description": "{{ $labels.schema }}.{{ $labels.table }} lost more than half its rows in the last hour"
                    }
                }
            ]
        }

    def export_to_yaml(self, output_file: str) -> None:
        """
        Export alert rules to YAML file.

        Args:
            output_file: Path to output YAML file
        """
        with open(output_file, 'w') as f:
            f.write(self.to_yaml())

        logger.info(f"Alert rules exported to {output_file}")

    def to_yaml(self) -> str:
        """Return the alert rules as a YAML document."""
        return yaml.dump(self.generate_alert_rules(), default_flow_style=False, sort_keys=False)

    def get_alert_summary(self) -> Dict[str, int]:
        """
        Get summary of alert rules.

        Returns:
            Dict with counts by severity
        """
        rules = self.generate_alert_rules()

        summary = {
            "total_groups": len(rules["groups"]),
            "total_alerts": 0,
            "critical": 0,
            "warning": 0,
            "info": 0
        }

        for group in rules["groups"]:
            for rule in group["rules"]:
                summary["total_alerts"] += 1
                severity = rule["labels"].get("severity", "unknown")
                if severity in summary:
                    summary[severity] += 1

        return summary
