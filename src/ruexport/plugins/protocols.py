# src/ruexport/plugins/protocols.py
"""Protocols at the seams between the engine and its collaborators.

The engine never imports the Cosmos SDK or touches files directly. It
talks to a PagedQuerySource for data and a RowSink for output.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any, Protocol, runtime_checkable

from ruexport.contracts import Page, QuerySpec, ShardArtifact


@runtime_checkable
class PagedQuerySource(Protocol):
    """A store that answers a query one page at a time.

    Implementations:
    - CosmosQuerySource: Azure Cosmos DB container (production)
    - tests.fixtures.store.FakePagedSource: scripted pages (testing)

    fetch_pages() must be lazy: each page is requested from the store only
    when the caller asks for it. Failures raise FetchError and are not
    retried.
    """

    def fetch_pages(
        self,
        query: QuerySpec,
        *,
        max_item_count: int,
        max_concurrency: int,
    ) -> Iterator[Page]: ...


@runtime_checkable
class RowSink(Protocol):
    """Receives formatted rows and persists them in shards."""

    def emit(self, values: Sequence[Any]) -> None: ...

    def finalize(self) -> list[ShardArtifact]: ...
