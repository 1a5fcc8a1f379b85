"""Tests for the cross-tenant Key Vault secret fetch."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError

import vault
from credentials import CredentialCache
from models import IdentityConfig, KeyVaultConfig
from vault import SecretFetcher, fetch_secret
from tests.conftest import FakeCredential


def _secret_client(value="s3cret"):
    """A mock SecretClient usable as its own context manager"""
    client = MagicMock()
    client.__enter__.return_value = client
    client.get_secret.return_value = SimpleNamespace(name="demo-secret", value=value)
    return client


class TestSecretFetcher:
    def test_uses_vault_tenant_for_the_exchange(self, settings, credential_cache):
        client = _secret_client()
        fetcher = SecretFetcher(
            IdentityConfig.from_mapping(settings),
            KeyVaultConfig.from_mapping(settings),
            credential_cache,
            client_factory=lambda credential: client,
        )

        assert fetcher.fetch() == "s3cret"
        assert credential_cache.requests == [("mi-client-id", "vault-tenant", "app-client-id")]
        client.get_secret.assert_called_once_with("demo-secret")
        client.__exit__.assert_called_once()

    def test_authentication_failure_invalidates_credential(self, settings, credential_cache):
        client = _secret_client()
        client.get_secret.side_effect = ClientAuthenticationError("AADSTS700213: No matching federated identity record")
        fetcher = SecretFetcher(
            IdentityConfig.from_mapping(settings),
            KeyVaultConfig.from_mapping(settings),
            credential_cache,
            client_factory=lambda credential: client,
        )

        with pytest.raises(ClientAuthenticationError):
            fetcher.fetch()
        assert credential_cache.invalidated == [("vault-tenant", "app-client-id")]
        client.__exit__.assert_called_once()

    def test_secret_client_points_at_configured_vault(self, settings, credential_cache):
        fetcher = SecretFetcher(
            IdentityConfig.from_mapping(settings),
            KeyVaultConfig.from_mapping(settings),
            credential_cache,
        )
        client = fetcher._build_secret_client(credential_cache.get("mi", "vault-tenant", "app"))
        assert client.vault_url == "https://othervault.vault.azure.net"


class TestFetchSecret:
    def test_success(self, settings, credential_cache):
        value, error = fetch_secret(settings, credential_cache, client_factory=lambda c: _secret_client("v1"))
        assert value == "v1"
        assert error is None

    @pytest.mark.parametrize(
        "name,setting",
        [
            ("KEY_VAULT_URI", "KeyVault:Uri"),
            ("KEY_VAULT_TENANT_ID", "KeyVault:TenantId"),
            ("KEY_VAULT_SECRET_NAME", "KeyVault:SecretName"),
            ("CLIENT_ID", "AzureAd:ClientId"),
            ("MANAGED_IDENTITY_CLIENT_ID", "AzureAd:ClientCredentials:0:ManagedIdentityClientId"),
        ],
    )
    def test_missing_setting_returns_diagnostic(self, settings, credential_cache, name, setting):
        settings[name] = ""

        value, error = fetch_secret(settings, credential_cache, client_factory=lambda c: _secret_client())

        assert value is None
        assert error.startswith("Error fetching secret from the other tenant:")
        assert setting in error
        assert credential_cache.requests == []

    def test_missing_uri_key_entirely(self, settings, credential_cache):
        del settings["KEY_VAULT_URI"]
        value, error = fetch_secret(settings, credential_cache)
        assert value is None
        assert "KeyVault:Uri" in error

    def test_service_error_includes_trace(self, settings, credential_cache):
        client = _secret_client()
        client.get_secret.side_effect = ServiceRequestError("name resolution failed")

        value, error = fetch_secret(settings, credential_cache, client_factory=lambda c: client)

        assert value is None
        assert "name resolution failed" in error
        assert "Full Trace:" in error
        assert "Traceback" in error

    def test_trace_can_be_hidden(self, settings, credential_cache):
        client = _secret_client()
        client.get_secret.side_effect = ServiceRequestError("name resolution failed")

        _, error = fetch_secret(settings, credential_cache, client_factory=lambda c: client, show_trace=False)

        assert error == "Error fetching secret from the other tenant: name resolution failed"


class TestSecretClientLifetime:
    def _fetcher(self, settings, credential_cache):
        return SecretFetcher(
            IdentityConfig.from_mapping(settings),
            KeyVaultConfig.from_mapping(settings),
            credential_cache,
        )

    def test_closed_after_fetch(self, settings, credential_cache):
        with patch.object(vault, "SecretClient") as client_cls:
            client = client_cls.return_value
            client.__enter__.return_value = client
            client.get_secret.return_value = SimpleNamespace(name="demo-secret", value="s3cret")

            assert self._fetcher(settings, credential_cache).fetch() == "s3cret"

        client.__exit__.assert_called_once()

    def test_closed_when_fetch_fails(self, settings, credential_cache):
        with patch.object(vault, "SecretClient") as client_cls:
            client = client_cls.return_value
            client.__enter__.return_value = client
            client.get_secret.side_effect = ServiceRequestError("name resolution failed")

            with pytest.raises(ServiceRequestError):
                self._fetcher(settings, credential_cache).fetch()

        client.__exit__.assert_called_once()

    def test_credential_built_with_vault_tenant_setting(self, settings):
        factory = MagicMock(return_value=FakeCredential("vault-tenant", "app-client-id"))
        client = _secret_client()
        fetcher = SecretFetcher(
            IdentityConfig.from_mapping(settings),
            KeyVaultConfig.from_mapping(settings),
            CredentialCache(factory=factory),
            client_factory=lambda credential: client,
        )

        fetcher.fetch()

        factory.assert_called_once_with(
            "mi-client-id", "vault-tenant", "app-client-id", tenant_setting="KeyVault:TenantId"
        )
