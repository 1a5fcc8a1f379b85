"""
Credential exchange: Managed Identity token -> client assertion -> app credential

The managed identity requests a token for the token exchange audience and that
token is presented as the client assertion for the app registration. The app
registration must have a federated identity credential trusting the managed
identity, in every tenant it authenticates against.
"""

import logging
import threading

from azure.identity import ClientAssertionCredential, ManagedIdentityCredential

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# For federated credentials, the audience must be api://AzureADTokenExchange
# This is the standard audience for workload identity federation
TOKEN_EXCHANGE_AUDIENCE = "api://AzureADTokenExchange"
TOKEN_EXCHANGE_SCOPE = f"{TOKEN_EXCHANGE_AUDIENCE}/.default"


def managed_identity_assertion(managed_identity_client_id):
    """Return a callable producing a Managed Identity token for the exchange audience

    Nothing is requested until the callable is invoked.
    """
    credential = ManagedIdentityCredential(client_id=managed_identity_client_id)

    def get_assertion():
        # we must request the managed identity token with the exchange audience for federation to work
        return credential.get_token(TOKEN_EXCHANGE_SCOPE).token

    return get_assertion


def resolve_credential(managed_identity_client_id, tenant_id, app_client_id, tenant_setting="AzureAd:TenantId"):
    """
    Build a credential for the app registration in ``tenant_id``

    The returned ClientAssertionCredential can be handed to any Azure SDK client.
    No token is acquired until that client makes its first call.
    ``tenant_setting`` names the configuration key reported when the tenant is
    missing, e.g. ``KeyVault:TenantId`` for the cross-tenant vault.
    """
    for setting, value in (
        ("AzureAd:ClientCredentials:0:ManagedIdentityClientId", managed_identity_client_id),
        (tenant_setting, tenant_id),
        ("AzureAd:ClientId", app_client_id),
    ):
        if not value:
            raise ConfigurationError(setting)

    return ClientAssertionCredential(
        tenant_id,
        app_client_id,
        managed_identity_assertion(managed_identity_client_id),
    )


class CredentialCache:
    """Process-wide federated credentials keyed by tenant and client ids

    Credentials hold their own token cache, so reusing them avoids a Managed
    Identity round trip for every page request.
    """

    def __init__(self, factory=resolve_credential):
        self._factory = factory
        self._credentials = {}
        self._lock = threading.Lock()

    def get(self, managed_identity_client_id, tenant_id, app_client_id, **kwargs):
        """Return the cached credential, building it on first use

        Extra keyword arguments (e.g. ``tenant_setting``) go to the factory.
        """
        key = (tenant_id, app_client_id, managed_identity_client_id)
        with self._lock:
            credential = self._credentials.get(key)
            if credential is None:
                logger.info("Building federated credential for tenant %s, client %s", tenant_id, app_client_id)
                credential = self._factory(managed_identity_client_id, tenant_id, app_client_id, **kwargs)
                self._credentials[key] = credential
            return credential

    def invalidate(self, tenant_id, app_client_id):
        """Drop cached credentials for the tenant/client pair"""
        with self._lock:
            stale = [key for key in self._credentials if key[:2] == (tenant_id, app_client_id)]
            for key in stale:
                del self._credentials[key]
        if stale:
            logger.info("Invalidated federated credential for tenant %s, client %s", tenant_id, app_client_id)
        return len(stale)

    def clear(self):
        with self._lock:
            self._credentials.clear()

    def __len__(self):
        return len(self._credentials)
