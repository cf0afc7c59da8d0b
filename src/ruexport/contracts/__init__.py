"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from
ruexport.core.config.
"""

from ruexport.contracts.errors import (
    ConfigurationError,
    ExportError,
    FetchError,
    ShardWriteError,
)
from ruexport.contracts.query import Page, QuerySpec, ShardArtifact
from ruexport.contracts.results import ExportResult, SettingsResult

__all__ = [
    "ConfigurationError",
    "ExportError",
    "ExportResult",
    "FetchError",
    "Page",
    "QuerySpec",
    "SettingsResult",
    "ShardArtifact",
    "ShardWriteError",
]
