# src/ruexport/contracts/errors.py
"""Error taxonomy for export runs.

Every failure that ends a run derives from ExportError so the CLI can
report it as a single diagnostic line. Missing IDs in the store are NOT
errors; they become placeholder rows.
"""

from __future__ import annotations


class ExportError(Exception):
    """Base class for all export failures."""


class ConfigurationError(ExportError):
    """Raised before any store interaction when inputs are unusable.

    Examples: a blank query file, an invalid column projection.
    """


class FetchError(ExportError):
    """Raised when the store rejects or fails a page request.

    Never retried by the engine. Shards already flushed stay on disk.

    Attributes:
        status_code: HTTP status reported by the store, if any
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ShardWriteError(ExportError):
    """Raised when a shard cannot be written to its final path.

    Attributes:
        path: Final shard path that was being written
    """

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to write shard {path}: {reason}")
        self.path = path
