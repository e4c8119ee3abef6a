"""
Configuration for the Row Count Exporter

Settings come from command-line flags, which default to environment
variables. Invalid settings raise ConfigurationError, which is fatal at
startup.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

import psycopg2
from psycopg2.extensions import parse_dsn

from src.exporter.errors import ConfigurationError
from src.monitoring.server import parse_listen_address

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDRESS = ":9557"
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_REFRESH_INTERVAL = 60.0
DEFAULT_FAILURE_THRESHOLD = 3


def _env_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _log_level(value: str) -> str:
    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(f"Invalid log level: {value!r}")
    return level


@dataclass
class ExporterConfig:
    """
    Exporter settings.

    Attributes:
        dsn: PostgreSQL connection string or URI
        max_connections: Upper bound on open database connections
        ignore_pattern: Regex searched in ``schema.table``; empty disables ignoring
        refresh_interval: Seconds between scrape cycles; 0 scrapes on every pull
        listen_address: ``host:port`` of the metrics server
        metrics_path: Path under which metrics are exposed
        failure_threshold: Failed discoveries in a row before all row counts are cleared
        json_logging: Emit JSON log lines
        log_level: Root log level
        vault_secret: Vault path holding database credentials, used instead of dsn
    """

    dsn: str = ""
    max_connections: int = 1
    ignore_pattern: Optional[str] = None
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    metrics_path: str = DEFAULT_METRICS_PATH
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    json_logging: bool = False
    log_level: str = "INFO"
    vault_secret: Optional[str] = None

    @property
    def scrape_on_pull(self) -> bool:
        """True when scrapes are driven by metrics requests instead of a loop."""
        return self.refresh_interval == 0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExporterConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Returns:
            ExporterConfig with unset variables left at their defaults

        Raises:
            ConfigurationError: If a numeric variable or the log level cannot be parsed
        """
        env = os.environ if environ is None else environ

        try:
            return cls(
                dsn=env.get("DATA_SOURCE_NAME", ""),
                max_connections=int(env.get("MAX_CONNECTIONS", 1)),
                ignore_pattern=env.get("IGNORE_PATTERN") or None,
                refresh_interval=float(env.get("REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL)),
                listen_address=env.get("LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
                metrics_path=env.get("METRICS_PATH", DEFAULT_METRICS_PATH),
                failure_threshold=int(env.get("FAILURE_THRESHOLD", DEFAULT_FAILURE_THRESHOLD)),
                json_logging=_env_bool(env.get("JSON_LOGGING")),
                log_level=_log_level(env.get("LOG_LEVEL", "INFO")),
                vault_secret=env.get("VAULT_SECRET") or None,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

    def validate(self) -> "ExporterConfig":
        """
        Check every setting.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: On the first invalid setting
        """
        if self.max_connections < 1:
            raise ConfigurationError("max_connections must be at least 1")

        if self.refresh_interval < 0:
            raise ConfigurationError("refresh_interval must not be negative")

        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be at least 1")

        self.log_level = _log_level(self.log_level)

        if not self.metrics_path.startswith("/") or self.metrics_path == "/":
            raise ConfigurationError(f"Invalid metrics path: {self.metrics_path!r}")

        try:
            parse_listen_address(self.listen_address)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if self.ignore_pattern:
            try:
                re.compile(self.ignore_pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid ignore pattern {self.ignore_pattern!r}: {e}") from e

        if not self.vault_secret:
            if not self.dsn:
                raise ConfigurationError(
                    "A DSN must be provided via --dsn or the DATA_SOURCE_NAME environment variable"
                )
            try:
                parse_dsn(self.dsn)
            except psycopg2.ProgrammingError as e:
                raise ConfigurationError(f"Invalid DSN: {e}") from e

        return self

    def describe(self) -> str:
        """Return a loggable summary that does not include credentials."""
        mode = "pull" if self.scrape_on_pull else f"every {self.refresh_interval:g}s"
        return (
            f"listen={self.listen_address}{self.metrics_path} "
            f"max_connections={self.max_connections} refresh={mode} "
            f"ignore={self.ignore_pattern or '-'} failure_threshold={self.failure_threshold}"
        )
