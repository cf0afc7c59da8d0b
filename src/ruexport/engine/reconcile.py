# src/ruexport/engine/reconcile.py
"""ID-reconciling export: exactly one output row per requested identifier.

Run state machine:
1. Normalize the requested IDs (trim, drop blanks/comments, dedupe
   case-insensitively, uppercase). An empty set is a zero-work run.
2. Partition the IDs into fixed-size batches.
3. Per batch, query with `@ids` bound to the batch and drain the pager
   into a map keyed by normalized identifier.
4. Per batch, walk the batch's IDs in order and emit the found row, or a
   placeholder carrying only the identifier.

Duplicate rows for one identifier within a batch: the last one seen wins.
Rows without an identifier never match a requested ID.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ruexport.contracts import ExportResult, QuerySpec
from ruexport.core.inputs import IDS_PARAMETER, batched, normalize_ids, validate_columns
from ruexport.core.logging import get_logger, log_context
from ruexport.engine.pager import CostAwarePager
from ruexport.plugins.protocols import RowSink

logger = get_logger(__name__)


class IdReconcilingExportPipeline:
    """Export rows for a list of identifiers, filling gaps with placeholders.

    Example:
        pipeline = IdReconcilingExportPipeline(
            pager,
            sink,
            query_text=default_id_query("vin", ["field1"]),
            id_field="vin",
            columns=["field1"],
            id_batch_size=500,
        )
        result = pipeline.run(["X1", "x1", "X2"])
        assert result.rows_emitted == 2
    """

    def __init__(
        self,
        pager: CostAwarePager,
        sink: RowSink,
        *,
        query_text: str,
        id_field: str,
        columns: Sequence[str],
        id_batch_size: int,
    ) -> None:
        """Initialize the pipeline.

        Args:
            pager: Cost-aware pager over the store
            sink: Output sink; its header must be [id_field, *columns]
            query_text: Query using the @ids parameter
            id_field: Row key holding the identifier
            columns: Auxiliary row keys, in output order
            id_batch_size: IDs per query

        Raises:
            ConfigurationError: If the projection names are invalid.
            ValueError: If id_batch_size is not positive.
        """
        validate_columns([id_field, *columns], "projection")
        if id_batch_size <= 0:
            raise ValueError(f"id_batch_size must be positive, got {id_batch_size}")

        self._pager = pager
        self._sink = sink
        self._query_text = query_text
        self._id_field = id_field
        self._columns = tuple(columns)
        self._id_batch_size = id_batch_size

    @property
    def header(self) -> tuple[str, ...]:
        return (self._id_field, *self._columns)

    def run(self, ids: Sequence[str]) -> ExportResult:
        """Export one row per distinct requested identifier.

        Args:
            ids: Requested identifiers (raw or already normalized)

        Returns:
            ExportResult; ids_requested == rows_emitted == ids_found + placeholders.

        Raises:
            FetchError: If any batch query fails. The run stops; flushed
                shards remain on disk.
            ShardWriteError: If a shard cannot be written.
        """
        requested = normalize_ids(ids)
        result = ExportResult(ids_requested=len(requested))

        if not requested:
            logger.info("No IDs to export")
            result.shards = self._sink.finalize()
            return result

        throttles_before = self._pager.throttle_count
        emitted: set[str] = set()

        for batch_number, batch in enumerate(batched(requested, self._id_batch_size), start=1):
            with log_context(batch=batch_number):
                found = self._fetch_batch(batch, result)

            for requested_id in batch:
                # Partitioning makes repeats impossible; keep exactly-once anyway
                if requested_id in emitted:
                    continue
                emitted.add(requested_id)

                row = found.get(requested_id)
                if row is None:
                    self._sink.emit(self._placeholder(requested_id))
                    result.placeholders += 1
                else:
                    self._sink.emit(self._project(row))
                    result.ids_found += 1
                result.rows_emitted += 1

            result.batches = batch_number

        result.shards = self._sink.finalize()
        result.throttle_count = self._pager.throttle_count - throttles_before
        return result

    def _fetch_batch(self, batch: list[str], result: ExportResult) -> dict[str, Mapping[str, Any]]:
        """Drain the pager for one batch into a normalized-id -> row map."""
        query = QuerySpec.build(self._query_text, {IDS_PARAMETER: batch})
        found: dict[str, Mapping[str, Any]] = {}
        duplicates = 0

        for page_number, page in enumerate(self._pager.pages(query), start=1):
            for row in page.rows:
                key = self._row_key(row)
                if key is None:
                    result.rows_without_id += 1
                    continue
                if key in found:
                    duplicates += 1
                found[key] = row
            result.pages_fetched += 1

            logger.info(
                "Page fetched",
                page=page_number,
                items=len(page),
                request_charge=round(page.request_charge, 2),
            )

        if duplicates:
            logger.warning(
                "Store returned duplicate rows for identifiers; keeping last seen",
                duplicates=duplicates,
            )
            result.duplicate_rows += duplicates
        return found

    def _row_key(self, row: Any) -> str | None:
        if not isinstance(row, Mapping):
            return None
        value = row.get(self._id_field)
        if value is None:
            return None
        key = str(value).strip()
        return key.upper() if key else None

    def _project(self, row: Mapping[str, Any]) -> list[Any]:
        return [row.get(name) for name in self.header]

    def _placeholder(self, requested_id: str) -> list[Any]:
        return [requested_id, *([""] * len(self._columns))]
