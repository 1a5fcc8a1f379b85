"""
Cross-tenant Key Vault secret fetch

The vault lives in a different tenant than the app's home tenant. The managed
identity token is exchanged for the app registration in the VAULT's tenant,
which requires the app to be multi-tenant and trusted there.
"""

import logging
import traceback

from azure.core.exceptions import ClientAuthenticationError
from azure.keyvault.secrets import SecretClient

from models import IdentityConfig, KeyVaultConfig

logger = logging.getLogger(__name__)


class SecretFetcher:
    def __init__(self, identity_config, vault_config, credential_cache, client_factory=None):
        self.identity_config = identity_config
        self.vault_config = vault_config
        self.credential_cache = credential_cache
        self._client_factory = client_factory or self._build_secret_client

    def _build_secret_client(self, credential):
        return SecretClient(vault_url=self.vault_config.uri, credential=credential)

    def fetch(self):
        """Return the current value of the configured secret"""
        credential = self.credential_cache.get(
            self.identity_config.managed_identity_client_id,
            self.vault_config.tenant_id,  # note that this value must be the vault's tenant id
            self.identity_config.client_id,
            tenant_setting="KeyVault:TenantId",
        )
        with self._client_factory(credential) as client:
            try:
                secret = client.get_secret(self.vault_config.secret_name)
            except ClientAuthenticationError:
                # force a fresh exchange on the next request
                self.credential_cache.invalidate(self.vault_config.tenant_id, self.identity_config.client_id)
                raise
        logger.info("Fetched secret %s from %s", self.vault_config.secret_name, self.vault_config.uri)
        return secret.value


def fetch_secret(config, credential_cache, client_factory=None, show_trace=True):
    """
    Fetch the configured secret from the other tenant

    Returns (value, None) on success and (None, diagnostic) on any failure,
    including missing configuration.
    """
    try:
        fetcher = SecretFetcher(
            IdentityConfig.from_mapping(config),
            KeyVaultConfig.from_mapping(config),
            credential_cache,
            client_factory=client_factory,
        )
        return fetcher.fetch(), None
    except Exception as e:
        logger.error("Error fetching secret from the other tenant: %s", e)
        message = f"Error fetching secret from the other tenant: {e}"
        if show_trace:
            message += f", Full Trace: {''.join(traceback.format_exception(type(e), e, e.__traceback__))}"
        return None, message
