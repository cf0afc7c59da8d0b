# src/ruexport/engine/pager.py
"""Cost-aware paging over a PagedQuerySource.

The pager turns a query into a lazy sequence of pages and paces the
store: when a page's request charge is strictly greater than the
threshold, the next fetch is delayed by a fixed duration.

Pacing is a per-page decision. No cumulative cost is tracked.

Fetch failures propagate unchanged. There is no retry layer here; a
partially retried query could emit a row twice.
"""

from __future__ import annotations

from collections.abc import Iterator

from ruexport.contracts import Page, QuerySpec
from ruexport.core.logging import get_logger
from ruexport.engine.clock import DEFAULT_CLOCK, Clock
from ruexport.plugins.protocols import PagedQuerySource

logger = get_logger(__name__)


class CostAwarePager:
    """Lazy page sequence with RU-threshold pacing.

    Each call to pages() starts a fresh sequence for its QuerySpec. A
    sequence cannot be restarted mid-stream.

    Example:
        pager = CostAwarePager(source, ru_threshold=10_000, ru_sleep_seconds=1.0)
        for page in pager.pages(QuerySpec.build("SELECT VALUE c.vin FROM c")):
            handle(page.rows)
    """

    def __init__(
        self,
        source: PagedQuerySource,
        *,
        ru_threshold: float,
        ru_sleep_seconds: float,
        max_item_count: int = 2000,
        max_concurrency: int = -1,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the pager.

        Args:
            source: Store adapter producing pages
            ru_threshold: Request charge above which the next fetch is delayed
            ru_sleep_seconds: Fixed delay applied after an over-threshold page
            max_item_count: Page size hint forwarded to the source
            max_concurrency: Parallelism hint forwarded to the source
            clock: Clock used for the delay (defaults to the system clock)

        Raises:
            ValueError: If threshold or delay is negative.
        """
        if ru_threshold < 0:
            raise ValueError(f"ru_threshold must be non-negative, got {ru_threshold}")
        if ru_sleep_seconds < 0:
            raise ValueError(f"ru_sleep_seconds must be non-negative, got {ru_sleep_seconds}")

        self._source = source
        self._ru_threshold = ru_threshold
        self._ru_sleep_seconds = ru_sleep_seconds
        self._max_item_count = max_item_count
        self._max_concurrency = max_concurrency
        self._clock = clock if clock is not None else DEFAULT_CLOCK

        self.pages_fetched = 0
        self.throttle_count = 0

    @property
    def ru_threshold(self) -> float:
        return self._ru_threshold

    def should_throttle(self, page: Page) -> bool:
        """Whether a page's cost calls for a pacing delay (strictly greater)."""
        return page.request_charge > self._ru_threshold

    def pages(self, query: QuerySpec) -> Iterator[Page]:
        """Yield pages for `query` until the store is exhausted.

        The delay for an over-threshold page runs when the caller asks for
        the following page, i.e. after the caller has handled the page and
        before the next round trip. A final over-threshold page is paced
        too, because the next query draws on the same budget.

        Raises:
            FetchError: Propagated from the source on any fetch failure.
        """
        source_pages = self._source.fetch_pages(
            query,
            max_item_count=self._max_item_count,
            max_concurrency=self._max_concurrency,
        )
        for page in source_pages:
            self.pages_fetched += 1
            yield page

            if self.should_throttle(page):
                self.throttle_count += 1
                logger.info(
                    "Throttling to respect RU threshold",
                    request_charge=round(page.request_charge, 2),
                    ru_threshold=self._ru_threshold,
                    sleep_ms=int(self._ru_sleep_seconds * 1000),
                )
                self._clock.sleep(self._ru_sleep_seconds)
