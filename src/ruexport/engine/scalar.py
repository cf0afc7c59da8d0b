# src/ruexport/engine/scalar.py
"""Scalar export: one free-form query, one CSV column.

Every value of every page is emitted in arrival order. The query is
expected to return scalars (e.g. `SELECT VALUE c.vin FROM c`).
"""

from __future__ import annotations

from ruexport.contracts import ExportResult, QuerySpec
from ruexport.core.logging import get_logger
from ruexport.engine.pager import CostAwarePager
from ruexport.plugins.protocols import RowSink

logger = get_logger(__name__)


class ScalarExportPipeline:
    """Drive the pager end-to-end and stream scalar values into the sink."""

    def __init__(self, pager: CostAwarePager, sink: RowSink) -> None:
        self._pager = pager
        self._sink = sink

    def run(self, query: QuerySpec) -> ExportResult:
        """Export all values returned by `query`.

        Returns:
            ExportResult with page, row, throttle and shard counts.

        Raises:
            FetchError: If any page request fails. Flushed shards remain.
            ShardWriteError: If a shard cannot be written.
        """
        result = ExportResult()
        throttles_before = self._pager.throttle_count

        for page_number, page in enumerate(self._pager.pages(query), start=1):
            for value in page.rows:
                self._sink.emit([value])
            result.rows_emitted += len(page)
            result.pages_fetched = page_number

            logger.info(
                "Page fetched",
                page=page_number,
                items=len(page),
                total=result.rows_emitted,
                request_charge=round(page.request_charge, 2),
            )

        result.shards = self._sink.finalize()
        result.throttle_count = self._pager.throttle_count - throttles_before
        return result
