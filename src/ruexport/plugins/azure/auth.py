# src/ruexport/plugins/azure/auth.py
"""Cosmos DB client construction for the configured auth method.

Supports three authentication methods (validated as mutually exclusive by
ExportSettings):
1. Connection string
2. Account URL + account key
3. Account URL + Managed Identity (DefaultAzureCredential)

IMPORTANT: Connection strings and keys should come from environment
variables or a .env file, never from a committed settings file.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from ruexport.contracts.errors import ConfigurationError

if TYPE_CHECKING:
    from azure.cosmos import CosmosClient

    from ruexport.core.config import ExportSettings


def create_cosmos_client(settings: ExportSettings) -> CosmosClient:
    """Create a CosmosClient using the configured auth method.

    Raises:
        ConfigurationError: If the connection string is malformed.
    """
    from azure.cosmos import CosmosClient

    if settings.connection_string is not None:
        try:
            return CosmosClient.from_connection_string(settings.connection_string)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid Cosmos DB connection string: {e}") from None

    # validate_auth_method guarantees account_url is set for the other methods
    account_url = cast(str, settings.account_url)

    if settings.account_key is not None:
        return CosmosClient(account_url, credential=settings.account_key)

    from azure.identity import DefaultAzureCredential

    return CosmosClient(account_url, credential=DefaultAzureCredential())
