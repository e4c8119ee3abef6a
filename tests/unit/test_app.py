"""
Unit tests for exporter wiring.
"""

import time

import pytest
import requests
from unittest.mock import patch

from src.exporter.app import CountExporter
from src.exporter.models import TableRef
from src.utils.config import ExporterConfig


def make_config(**overrides):
    values = {
        "dsn": "dbname=app",
        "listen_address": "127.0.0.1:0",
        "refresh_interval": 0.05,
        "max_connections": 2,
    }
    values.update(overrides)
    return ExporterConfig(**values)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestCountExporter:
    """Test suite for CountExporter."""

    def test_builds_postgres_executor_by_default(self):
        """Test that the executor is sized by max_connections."""
        with patch('src.exporter.app.PostgresQueryExecutor') as mock_executor:
            exporter = CountExporter(make_config(max_connections=4))

        mock_executor.assert_called_once_with("dbname=app", max_connections=4)
        assert exporter.coordinator.max_workers == 4

    def test_interval_mode_refreshes_in_background(self, fake_executor):
        """Test that the loop publishes counts without any pull."""
        exporter = CountExporter(make_config(), executor=fake_executor)
        exporter.start()
        try:
            assert wait_for(lambda: len(exporter.registry) == 2)
            assert exporter.registry.get_entry(TableRef("a", "t1")).count == 5
        finally:
            exporter.stop()

        assert fake_executor.closed is True
        assert exporter.wait(timeout=0) is True

    def test_pull_mode_has_no_loop(self, fake_executor):
        """Test that a zero interval scrapes only on request."""
        exporter = CountExporter(make_config(refresh_interval=0), executor=fake_executor)
        exporter.start()
        try:
            assert exporter.loop is None
            assert fake_executor.rows_calls == 0

            _, port = exporter.server.server_address
            response = requests.get(f"http://127.0.0.1:{port}/metrics", timeout=5)

            assert 'pg_count_exporter_row_count{schema="a",table="t2"} 0.0' in response.text
            assert fake_executor.rows_calls == 1
        finally:
            exporter.stop()

    def test_ignore_pattern_is_applied(self, executor_factory):
        """Test that the configured ignore pattern reaches discovery."""
        executor = executor_factory({"a.t1": 1, "tmp.t2": 2})
        exporter = CountExporter(make_config(ignore_pattern=r"^tmp\."), executor=executor)

        result = exporter.coordinator.scrape_once()
        exporter.stop()

        assert [c.ref for c in result.published] == [TableRef("a", "t1")]

    def test_stop_is_idempotent(self, fake_executor):
        """Test that stopping twice is harmless."""
        exporter = CountExporter(make_config(), executor=fake_executor)
        exporter.start()

        exporter.stop()
        exporter.stop()

        assert exporter.server.server_address is None
