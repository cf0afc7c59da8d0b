# src/ruexport/contracts/query.py
"""Query and page value objects.

These types cross the boundary between the engine and the store adapter.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


def _freeze(value: Any) -> Any:
    if isinstance(value, list | tuple):
        return tuple(value)
    return value


@dataclass(frozen=True)
class QuerySpec:
    """Query text plus named parameters. Immutable once built.

    Parameters are kept as (name, value) pairs. Sequence values are frozen
    to tuples so that a QuerySpec can be shared safely between pages.

    Example:
        spec = QuerySpec.build(
            "SELECT * FROM c WHERE ARRAY_CONTAINS(@ids, UPPER(c.vin))",
            {"@ids": ["X1", "X2"]},
        )
    """

    text: str
    parameters: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def build(cls, text: str, parameters: dict[str, Any] | None = None) -> QuerySpec:
        """Create a QuerySpec from a parameter mapping."""
        params = tuple((name, _freeze(value)) for name, value in (parameters or {}).items())
        return cls(text=text, parameters=params)

    def parameter_list(self) -> list[dict[str, Any]]:
        """Render parameters in the shape the Cosmos SDK expects."""
        return [
            {"name": name, "value": list(value) if isinstance(value, tuple) else value}
            for name, value in self.parameters
        ]


@dataclass(frozen=True)
class Page:
    """One fetch result from the store.

    Attributes:
        rows: Rows in store order (scalars or dicts)
        request_charge: Cost of this page in request units
        has_more: Whether the store reported more pages for this query
    """

    rows: Sequence[Any]
    request_charge: float
    has_more: bool = False

    def __post_init__(self) -> None:
        if self.request_charge < 0:
            raise ValueError(f"request_charge must be non-negative, got {self.request_charge}")

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ShardArtifact:
    """Descriptor for one CSV shard flushed by the sink.

    content_hash and size_bytes describe the bytes on disk, so identical
    runs can be compared without re-reading every file.
    """

    path: str
    index: int
    data_rows: int
    content_hash: str
    size_bytes: int
