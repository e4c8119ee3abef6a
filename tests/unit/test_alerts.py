"""
Unit tests for alert rule generation.
"""

import yaml

from src.monitoring.alerts import AlertRuleGenerator


class TestAlertRuleGenerator:
    """Test suite for AlertRuleGenerator."""

    def test_generate_alert_rules_structure(self):
        """Test that rule groups follow the Prometheus format."""
        rules = AlertRuleGenerator().generate_alert_rules()

        assert len(rules["groups"]) == 2
        for group in rules["groups"]:
            assert group["name"].startswith("pg_count_exporter_")
            for rule in group["rules"]:
                assert {"alert", "expr", "for", "labels", "annotations"} <= set(rule)

    def test_rules_use_namespace(self):
        """Test that expressions reference the configured namespace."""
        rules = AlertRuleGenerator(namespace="custom").generate_alert_rules()

        exprs = [rule["expr"] for group in rules["groups"] for rule in group["rules"]]
        assert any("custom_scrape_errors_total" in expr for expr in exprs)
        assert not any("pg_count_exporter" in expr for expr in exprs)

    def test_stale_threshold_follows_refresh_interval(self):
        """Test that staleness is three refresh intervals with a floor."""
        def stale_expr(generator):
            rules = generator.generate_alert_rules()
            return next(
                rule["expr"]
                for group in rules["groups"]
                for rule in group["rules"]
                if rule["alert"] == "RowCountScrapeStale"
            )

        assert stale_expr(AlertRuleGenerator(refresh_interval_seconds=600)).endswith("> 1800")
        assert stale_expr(AlertRuleGenerator(refresh_interval_seconds=0)).endswith("> 300")

    def test_job_name(self):
        """Test that the exporter-down rule uses the job name."""
        rules = AlertRuleGenerator(job="counts").generate_alert_rules()

        assert rules["groups"][0]["rules"][0]["expr"] == 'up{job="counts"} == 0'

    def test_get_alert_summary(self):
        """Test summary counts by severity."""
        summary = AlertRuleGenerator().get_alert_summary()

        assert summary["total_groups"] == 2
        assert summary["total_alerts"] == 7
        assert summary["critical"] == 1
        assert summary["warning"] == 5
        assert summary["info"] == 1

    def test_export_to_yaml(self, tmp_path):
        """Test that exported YAML round-trips to the same rules."""
        generator = AlertRuleGenerator()
        output = tmp_path / "rules.yml"

        generator.export_to_yaml(str(output))

        assert yaml.safe_load(output.read_text()) == generator.generate_alert_rules()
