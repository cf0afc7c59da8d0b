"""Azure Cosmos DB adapter."""

from ruexport.plugins.azure.auth import create_cosmos_client
from ruexport.plugins.azure.cosmos_source import CosmosQuerySource

__all__ = ["CosmosQuerySource", "create_cosmos_client"]
