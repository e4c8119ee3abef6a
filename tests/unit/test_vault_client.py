"""
Unit tests for reading database credentials from Vault.
"""

import pytest
from unittest.mock import MagicMock, patch
from hvac.exceptions import Forbidden, InvalidPath, VaultError
from psycopg2.extensions import parse_dsn

from src.exporter.errors import ConfigurationError
from src.utils.vault_client import VaultClient

VAULT_URL = "http://vault.internal:8200"


@pytest.fixture
def hvac_client():
    """Patch hvac.Client with an authenticated mock."""
    with patch('src.utils.vault_client.hvac.Client') as mock:
        client = MagicMock()
        client.is_authenticated.return_value = True
        mock.return_value = client
        yield client


def store_secret(hvac_client, data):
    hvac_client.secrets.kv.v2.read_secret_version.return_value = {"data": {"data": data}}


class TestVaultConnection:
    """Test connecting and authenticating."""

    def test_address_and_token_from_environment(self, hvac_client, monkeypatch):
        """Test that VAULT_ADDR and VAULT_TOKEN are used by default."""
        monkeypatch.setenv("VAULT_ADDR", VAULT_URL)
        monkeypatch.setenv("VAULT_TOKEN", "s.exporter")

        with patch('src.utils.vault_client.hvac.Client', return_value=hvac_client) as mock:
            client = VaultClient()

        mock.assert_called_once_with(url=VAULT_URL, token="s.exporter", verify=True)
        assert client.url == VAULT_URL

    @pytest.mark.parametrize("unset", ["VAULT_ADDR", "VAULT_TOKEN"])
    def test_missing_setting_is_configuration_error(self, monkeypatch, unset):
        """Test that Vault mode without an address or token is rejected."""
        monkeypatch.setenv("VAULT_ADDR", VAULT_URL)
        monkeypatch.setenv("VAULT_TOKEN", "s.exporter")
        monkeypatch.delenv(unset)

        with pytest.raises(ConfigurationError, match="VAULT_ADDR and VAULT_TOKEN"):
            VaultClient()

    def test_rejected_token(self, hvac_client):
        """Test that an unauthenticated token is a VaultError."""
        hvac_client.is_authenticated.return_value = False

        with pytest.raises(VaultError, match="rejected the token"):
            VaultClient(url=VAULT_URL, token="s.expired")

    def test_unreachable_vault(self, hvac_client):
        """Test that connection failures are wrapped with their cause."""
        hvac_client.is_authenticated.side_effect = ConnectionError("refused")

        with pytest.raises(VaultError, match="Cannot reach Vault") as exc_info:
            VaultClient(url=VAULT_URL, token="s.exporter")

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_context_manager_closes_session(self, hvac_client):
        """Test that leaving the context releases the HTTP session."""
        with VaultClient(url=VAULT_URL, token="s.exporter") as client:
            pass

        hvac_client.adapter.close.assert_called_once()
        assert client.client is None


class TestPostgresDsn:
    """Test building the DSN from a stored secret."""

    @pytest.fixture
    def vault(self, hvac_client):
        return VaultClient(url=VAULT_URL, token="s.exporter")

    def test_full_credentials(self, hvac_client, vault):
        """Test that every stored field ends up in the DSN."""
        store_secret(hvac_client, {
            "username": "exporter",
            "password": "p w",
            "host": "db.internal",
            "port": 6432,
            "database": "app",
        })

        dsn = parse_dsn(vault.get_postgres_dsn("pg"))

        assert dsn == {
            "host": "db.internal",
            "port": "6432",
            "dbname": "app",
            "user": "exporter",
            "password": "p w",
        }
        hvac_client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="pg",
            mount_point="secret"
        )

    def test_optional_fields_default(self, hvac_client, vault):
        """Test defaults for host, port and database."""
        store_secret(hvac_client, {"username": "exporter", "password": "pw"})

        dsn = parse_dsn(vault.get_postgres_dsn())

        assert (dsn["host"], dsn["port"], dsn["dbname"]) == ("localhost", "5432", "postgres")
        hvac_client.secrets.kv.v2.read_secret_version.assert_called_once_with(
            path="postgres-credentials",
            mount_point="secret"
        )

    def test_missing_password(self, hvac_client, vault):
        """Test that incomplete credentials are a configuration error."""
        store_secret(hvac_client, {"username": "exporter"})

        with pytest.raises(ConfigurationError, match="missing: password"):
            vault.get_postgres_dsn("pg")

    def test_empty_response(self, hvac_client, vault):
        """Test that a secret without data lists every required field."""
        hvac_client.secrets.kv.v2.read_secret_version.return_value = {}

        with pytest.raises(ConfigurationError, match="missing: username, password"):
            vault.get_postgres_dsn("pg")

    def test_unknown_path(self, hvac_client, vault):
        """Test that a missing secret is a configuration error."""
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = InvalidPath("not found")

        with pytest.raises(ConfigurationError, match="No Vault secret at secret/pg"):
            vault.get_postgres_dsn("pg")

    def test_read_denied(self, hvac_client, vault):
        """Test that a policy denial stays a VaultError and keeps its cause."""
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = Forbidden("permission denied")

        with pytest.raises(VaultError, match="Reading Vault secret pg failed") as exc_info:
            vault.get_postgres_dsn("pg")

        assert isinstance(exc_info.value.__cause__, Forbidden)
