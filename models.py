"""Typed settings and the comment record.

The settings objects are frozen snapshots of ``app.config`` taken per request
and handed to the helpers, so nothing below the page handlers reads
configuration on its own. Required values that are missing or blank raise
:class:`ConfigurationError` naming the configuration key, e.g.
``AzureAd:TenantId``.
"""

from dataclasses import dataclass
from typing import Mapping

from exceptions import ConfigurationError


def _require(config: Mapping, name: str, setting: str) -> str:
    value = config.get(name)
    if value is None or not str(value).strip():
        raise ConfigurationError(setting)
    return str(value).strip()


@dataclass(frozen=True)
class IdentityConfig:
    tenant_id: str
    client_id: str
    managed_identity_client_id: str

    @staticmethod
    def from_mapping(config: Mapping) -> "IdentityConfig":
        return IdentityConfig(
            tenant_id=_require(config, "TENANT_ID", "AzureAd:TenantId"),
            client_id=_require(config, "CLIENT_ID", "AzureAd:ClientId"),
            managed_identity_client_id=_require(
                config,
                "MANAGED_IDENTITY_CLIENT_ID",
                "AzureAd:ClientCredentials:0:ManagedIdentityClientId",
            ),
        )


@dataclass(frozen=True)
class StorageConfig:
    account_name: str
    container_name: str

    @property
    def account_url(self) -> str:
        return f"https://{self.account_name}.blob.core.windows.net"

    @staticmethod
    def from_mapping(config: Mapping) -> "StorageConfig":
        return StorageConfig(
            account_name=_require(config, "STORAGE_ACCOUNT_NAME", "AzureStorageConfig:AccountName"),
            container_name=_require(config, "STORAGE_CONTAINER_NAME", "AzureStorageConfig:ContainerName"),
        )


@dataclass(frozen=True)
class KeyVaultConfig:
    # Tenant that owns the vault, usually not the app's home tenant
    tenant_id: str
    uri: str
    secret_name: str

    @staticmethod
    def from_mapping(config: Mapping) -> "KeyVaultConfig":
        return KeyVaultConfig(
            tenant_id=_require(config, "KEY_VAULT_TENANT_ID", "KeyVault:TenantId"),
            uri=_require(config, "KEY_VAULT_URI", "KeyVault:Uri"),
            secret_name=_require(config, "KEY_VAULT_SECRET_NAME", "KeyVault:SecretName"),
        )


@dataclass
class Comment:
    """One blob in the comments container; ``name`` is the blob name."""
    name: str
    text: str = ""
