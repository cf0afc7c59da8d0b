# src/ruexport/cli_helpers.py
"""CLI helper functions for wiring settings into engine components."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from ruexport.engine.clock import Clock
from ruexport.engine.pager import CostAwarePager
from ruexport.plugins.sinks.csv_sink import ShardedCSVSink

if TYPE_CHECKING:
    from ruexport.core.config import ExportSettings
    from ruexport.plugins.protocols import PagedQuerySource


def build_source(settings: "ExportSettings") -> "PagedQuerySource":
    """Create the Cosmos DB source for the configured container.

    The client itself is created on the first fetch.
    """
    from ruexport.plugins.azure import CosmosQuerySource, create_cosmos_client

    return CosmosQuerySource(
        lambda: create_cosmos_client(settings),
        database_id=settings.database_id,
        container_id=settings.container_id,
    )


def build_pager(
    source: "PagedQuerySource",
    settings: "ExportSettings",
    *,
    clock: Clock | None = None,
) -> CostAwarePager:
    """Create a pager using the settings' RU threshold and store hints."""
    return CostAwarePager(
        source,
        ru_threshold=settings.ru_threshold,
        ru_sleep_seconds=settings.ru_sleep_seconds,
        max_item_count=settings.max_item_count,
        max_concurrency=settings.max_concurrency,
        clock=clock,
    )


def build_sink(settings: "ExportSettings", header: Sequence[str]) -> ShardedCSVSink:
    """Create the sharded CSV sink (creates the output directory)."""
    return ShardedCSVSink(
        settings.output_dir,
        settings.output_prefix,
        header,
        max_rows_per_file=settings.max_rows_per_file,
        encoding=settings.encoding,
    )


def close_source(source: "PagedQuerySource") -> None:
    """Close the source if it holds a connection."""
    close = getattr(source, "close", None)
    if callable(close):
        close()
