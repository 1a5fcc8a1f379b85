"""Pytest configuration: in-memory stand-ins for the Azure SDK clients."""

from types import SimpleNamespace

import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

from models import IdentityConfig, StorageConfig


class FakeDownloader:
    def __init__(self, data):
        self._data = data

    def readall(self):
        return self._data


class FakeContainerClient:
    """Behaves like azure.storage.blob.ContainerClient for the calls the store makes."""

    def __init__(self, blobs=None, created=False):
        self.blobs = dict(blobs or {})
        self.created = created
        self.create_calls = 0
        self.close_calls = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self.close_calls += 1

    def exists(self):
        return self.created

    def create_container(self):
        self.create_calls += 1
        if self.created:
            raise ResourceExistsError("The specified container already exists.")
        self.created = True

    def list_blobs(self):
        return [SimpleNamespace(name=name) for name in sorted(self.blobs)]

    def download_blob(self, name):
        if name not in self.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        return FakeDownloader(self.blobs[name])

    def upload_blob(self, name, data, overwrite=False):
        if name in self.blobs and not overwrite:
            raise ResourceExistsError("The specified blob already exists.")
        self.blobs[name] = bytes(data)

    def delete_blob(self, name):
        if name not in self.blobs:
            raise ResourceNotFoundError("The specified blob does not exist.")
        del self.blobs[name]


class FakeCredential:
    """Token credential that must never be asked for a token in tests."""

    def __init__(self, tenant_id, client_id):
        self.tenant_id = tenant_id
        self.client_id = client_id

    def get_token(self, *scopes, **kwargs):
        raise AssertionError("unexpected token request")


class FakeCredentialCache:
    """Records lookups and invalidations instead of building credentials."""

    def __init__(self):
        self.requests = []
        self.invalidated = []

    def get(self, managed_identity_client_id, tenant_id, app_client_id, **kwargs):
        self.requests.append((managed_identity_client_id, tenant_id, app_client_id))
        return FakeCredential(tenant_id, app_client_id)

    def invalidate(self, tenant_id, app_client_id):
        self.invalidated.append((tenant_id, app_client_id))
        return 1


@pytest.fixture
def identity_config():
    return IdentityConfig(
        tenant_id="home-tenant",
        client_id="app-client-id",
        managed_identity_client_id="mi-client-id",
    )


@pytest.fixture
def storage_config():
    return StorageConfig(account_name="commentsacct", container_name="comments")


@pytest.fixture
def container():
    return FakeContainerClient()


@pytest.fixture
def credential_cache():
    return FakeCredentialCache()


@pytest.fixture
def settings():
    """A complete configuration mapping, as found in app.config"""
    return {
        "TENANT_ID": "home-tenant",
        "CLIENT_ID": "app-client-id",
        "MANAGED_IDENTITY_CLIENT_ID": "mi-client-id",
        "STORAGE_ACCOUNT_NAME": "commentsacct",
        "STORAGE_CONTAINER_NAME": "comments",
        "KEY_VAULT_TENANT_ID": "vault-tenant",
        "KEY_VAULT_URI": "https://othervault.vault.azure.net/",
        "KEY_VAULT_SECRET_NAME": "demo-secret",
    }
