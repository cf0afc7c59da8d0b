# src/ruexport/contracts/results.py
"""Run outcomes and settings validation results.

These types answer: "What did an operation produce?"

- SettingsResult replaces raise-on-missing-setting with a value the caller
  inspects. The CLI decides the exit status.
- ExportResult summarises one pipeline run for the console and JSON output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ruexport.contracts.query import ShardArtifact

T = TypeVar("T")


@dataclass(frozen=True)
class SettingsResult(Generic[T]):
    """Outcome of building a settings object.

    Use factory methods `success()` and `failure()` for construction.

    Attributes:
        settings: Validated settings (None on failure)
        errors: One human-readable line per problem (empty on success)
    """

    settings: T | None = None
    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls, settings: T) -> SettingsResult[T]:
        return cls(settings=settings)

    @classmethod
    def failure(cls, *errors: str) -> SettingsResult[T]:
        if not errors:
            raise ValueError("failure() requires at least one error message")
        return cls(errors=tuple(errors))

    @property
    def ok(self) -> bool:
        return self.settings is not None and not self.errors

    def unwrap(self) -> T:
        """Return the settings or raise if validation failed.

        Raises:
            ValueError: If this is a failure result.
        """
        if self.settings is None:
            raise ValueError("; ".join(self.errors))
        return self.settings


@dataclass
class ExportResult:
    """Summary of one export run.

    The ID-specific counters stay at zero for scalar runs.
    """

    pages_fetched: int = 0
    rows_emitted: int = 0
    throttle_count: int = 0
    shards: list[ShardArtifact] = field(default_factory=list)
    batches: int = 0
    ids_requested: int = 0
    ids_found: int = 0
    placeholders: int = 0
    rows_without_id: int = 0
    duplicate_rows: int = 0

    @property
    def shard_paths(self) -> list[str]:
        return [shard.path for shard in self.shards]

    def to_dict(self) -> dict[str, Any]:
        """Render as a JSON-safe dict."""
        return {
            "pages_fetched": self.pages_fetched,
            "rows_emitted": self.rows_emitted,
            "throttle_count": self.throttle_count,
            "batches": self.batches,
            "ids_requested": self.ids_requested,
            "ids_found": self.ids_found,
            "placeholders": self.placeholders,
            "rows_without_id": self.rows_without_id,
            "duplicate_rows": self.duplicate_rows,
            "shards": [
                {
                    "path": shard.path,
                    "index": shard.index,
                    "data_rows": shard.data_rows,
                    "content_hash": shard.content_hash,
                    "size_bytes": shard.size_bytes,
                }
                for shard in self.shards
            ],
        }
