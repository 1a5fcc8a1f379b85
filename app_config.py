"""
Configuration file for the MI-as-FIC Web App
Uses a User-Assigned Managed Identity as a federated credential for the app registration
"""

import os


def _setting(key, legacy=None, default=None):
    """Read a setting by its configuration key.

    App Service exposes ``AzureAd:TenantId`` as ``AzureAd__TenantId``;
    the short legacy name is accepted as a fallback.
    """
    value = os.getenv(key.replace(":", "__"))
    if value is None and legacy:
        value = os.getenv(legacy)
    return default if value is None else value


# Tenant ID (Directory ID) of the app registration
TENANT_ID = _setting("AzureAd:TenantId", "TENANT_ID")

# Web App Client ID (app registration)
CLIENT_ID = _setting("AzureAd:ClientId", "CLIENT_ID")

# Managed Identity Client ID (User-Assigned Managed Identity)
# This is the client ID of the managed identity, NOT the app registration
MANAGED_IDENTITY_CLIENT_ID = _setting(
    "AzureAd:ClientCredentials:0:ManagedIdentityClientId", "MANAGED_IDENTITY_CLIENT_ID"
)

# Authority
AUTHORITY = f"https://login.microsoftonline.com/{TENANT_ID or 'organizations'}"

# Blob Storage account holding the comments container
STORAGE_ACCOUNT_NAME = _setting("AzureStorageConfig:AccountName", "STORAGE_ACCOUNT_NAME")
STORAGE_CONTAINER_NAME = _setting("AzureStorageConfig:ContainerName", "STORAGE_CONTAINER_NAME")

# Key Vault living in another tenant
# The app registration must be multi-tenant and provisioned in the vault's tenant
KEY_VAULT_TENANT_ID = _setting("KeyVault:TenantId", "KEY_VAULT_TENANT_ID")
KEY_VAULT_URI = _setting("KeyVault:Uri", "KEY_VAULT_URI")
KEY_VAULT_SECRET_NAME = _setting("KeyVault:SecretName", "KEY_VAULT_SECRET_NAME")

# Scopes - delegated permissions for Microsoft Graph
# Space separated, e.g. "User.Read Mail.Read"
SCOPE = _setting("DownstreamApi:Scopes", "GRAPH_SCOPES", "User.Read").split()

GRAPH_ENDPOINT = os.getenv("GRAPH_ENDPOINT", "https://graph.microsoft.com/v1.0")

# Redirect path
REDIRECT_PATH = "/getAToken"

# Embed the full traceback in Key Vault diagnostics
# Sample behaviour only; turn off anywhere real users see the page
SHOW_ERROR_TRACE = os.getenv("SHOW_ERROR_TRACE", "true").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Flask session configuration
SESSION_TYPE = "filesystem"
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")

# Port
PORT = os.getenv("PORT", "5000")
