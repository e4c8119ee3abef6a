"""
Vault Credentials for the Row Count Exporter

Builds the PostgreSQL DSN from credentials kept in a HashiCorp Vault KV v2
engine, so the password never appears on the command line or in the
environment. Only VAULT_ADDR and VAULT_TOKEN are read from the environment.
"""

import logging
import os
from typing import Any, Dict, Optional

import hvac
from hvac.exceptions import InvalidPath, VaultError
from psycopg2.extensions import make_dsn

from src.exporter.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_PATH = "postgres-credentials"
REQUIRED_FIELDS = ("username", "password")


class VaultClient:
    """
    Reads exporter database credentials from Vault.

    Example usage:
        with VaultClient() as vault:
            dsn = vault.get_postgres_dsn("postgres-credentials")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        mount_point: str = "secret",
        verify: bool = True
    ):
        """
        Connect and authenticate.

        Args:
            url: Vault address, defaults to VAULT_ADDR
            token: Vault token, defaults to VAULT_TOKEN
            mount_point: Mount point of the KV v2 engine
            verify: Verify the server's TLS certificate

        Raises:
            ConfigurationError: If no address or token is available
            VaultError: If Vault is unreachable or rejects the token
        """
        self.url = url or os.getenv("VAULT_ADDR")
        token = token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.url or not token:
            raise ConfigurationError(
                "Reading credentials from Vault needs VAULT_ADDR and VAULT_TOKEN"
            )

        self.client = hvac.Client(url=self.url, token=token, verify=verify)
        try:
            authenticated = self.client.is_authenticated()
        except (VaultError, OSError) as e:
            raise VaultError(f"Cannot reach Vault at {self.url}: {e}") from e

        if not authenticated:
            raise VaultError(f"Vault at {self.url} rejected the token")

        logger.info(f"Authenticated with Vault at {self.url}")

    def read_secret(self, path: str) -> Dict[str, Any]:
        """
        Read the latest version of a KV v2 secret.

        Raises:
            ConfigurationError: If there is no secret at path
            VaultError: If the read fails
        """
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath as e:
            raise ConfigurationError(f"No Vault secret at {self.mount_point}/{path}") from e
        except (VaultError, OSError) as e:
            raise VaultError(f"Reading Vault secret {path} failed: {e}") from e

        return ((response or {}).get("data") or {}).get("data") or {}

    def get_postgres_dsn(self, path: str = DEFAULT_CREDENTIALS_PATH) -> str:
        """
        Build a libpq DSN from credentials stored in Vault.

        The secret must contain ``username`` and ``password`` and may contain
        ``host``, ``port`` and ``database``.

        Args:
            path: Secret path of the credentials

        Returns:
            DSN string

        Raises:
            ConfigurationError: If the secret is absent or lacks username or password
        """
        credentials = self.read_secret(path)

        missing = [key for key in REQUIRED_FIELDS if not credentials.get(key)]
        if missing:
            raise ConfigurationError(f"Vault secret {path} is missing: {', '.join(missing)}")

        dsn = make_dsn(
            host=credentials.get("host", "localhost"),
            port=credentials.get("port", 5432),
            dbname=credentials.get("database", "postgres"),
            user=credentials["username"],
            password=credentials["password"]
        )

        logger.info(f"Built PostgreSQL DSN from Vault secret {path}")
        return dsn

    def close(self):
        """Release the underlying HTTP session."""
        if self.client is not None:
            self.client.adapter.close()
            self.client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
