"""
ruexport: RU-aware CSV exports from Azure Cosmos DB.

Pages through large Cosmos DB result sets while pacing against a
request-unit threshold, and writes the rows into size-bounded CSV shards.
"""

__version__ = "0.1.0"
