# tests/engine/test_pager.py
"""Tests for CostAwarePager pacing and page sequencing."""

from typing import Any

import pytest

from ruexport.contracts import FetchError, Page, QuerySpec
from ruexport.engine.clock import MockClock
from ruexport.engine.pager import CostAwarePager
from tests.fixtures.store import FakePagedSource, RecordingClock

QUERY = QuerySpec.build("SELECT VALUE c.vin FROM c")


def _pages(*charges: float) -> list[Page]:
    return [Page(rows=[f"row{i}"], request_charge=charge) for i, charge in enumerate(charges)]


class TestPacing:
    def test_sleeps_after_over_threshold_pages_only(self) -> None:
        """Charges 15000, 5000, 12000 against a 10000 threshold pace twice."""
        events: list[tuple[str, Any]] = []
        source = FakePagedSource(_pages(15_000, 5_000, 12_000), events=events)
        clock = RecordingClock(events)
        pager = CostAwarePager(source, ru_threshold=10_000, ru_sleep_seconds=1.0, clock=clock)

        pages = list(pager.pages(QUERY))

        assert [p.request_charge for p in pages] == [15_000, 5_000, 12_000]
        assert events == [
            ("fetch", 1),
            ("sleep", 1.0),
            ("fetch", 2),
            ("fetch", 3),
            ("sleep", 1.0),
        ]
        assert pager.pages_fetched == 3
        assert pager.throttle_count == 2

    def test_charge_equal_to_threshold_does_not_pace(self, mock_clock: MockClock) -> None:
        source = FakePagedSource(_pages(10_000, 10_000))
        pager = CostAwarePager(source, ru_threshold=10_000, ru_sleep_seconds=1.0, clock=mock_clock)

        list(pager.pages(QUERY))

        assert mock_clock.sleeps == []
        assert pager.throttle_count == 0

    def test_zero_threshold_paces_any_cost(self, mock_clock: MockClock) -> None:
        source = FakePagedSource(_pages(0.0, 0.01, 3.0))
        pager = CostAwarePager(source, ru_threshold=0, ru_sleep_seconds=0.25, clock=mock_clock)

        list(pager.pages(QUERY))

        assert mock_clock.sleeps == [0.25, 0.25]

    def test_sleep_happens_before_next_fetch_not_before_delivery(self, mock_clock: MockClock) -> None:
        """The caller sees an expensive page before any delay is applied."""
        source = FakePagedSource(_pages(20_000, 1.0))
        pager = CostAwarePager(source, ru_threshold=10_000, ru_sleep_seconds=2.0, clock=mock_clock)

        iterator = pager.pages(QUERY)
        first = next(iterator)

        assert first.request_charge == 20_000
        assert mock_clock.sleeps == []

        next(iterator)
        assert mock_clock.sleeps == [2.0]

    def test_should_throttle_is_strict(self, empty_source: FakePagedSource) -> None:
        pager = CostAwarePager(empty_source, ru_threshold=100, ru_sleep_seconds=1.0, clock=MockClock())

        assert pager.ru_threshold == 100
        assert not pager.should_throttle(Page(rows=[], request_charge=100))
        assert pager.should_throttle(Page(rows=[], request_charge=100.01))


class TestPageSequence:
    def test_empty_source_yields_nothing(self, empty_source: FakePagedSource, mock_clock: MockClock) -> None:
        pager = CostAwarePager(empty_source, ru_threshold=10, ru_sleep_seconds=1.0, clock=mock_clock)

        assert list(pager.pages(QUERY)) == []
        assert pager.pages_fetched == 0
        assert mock_clock.sleeps == []

    def test_empty_pages_are_delivered(self, mock_clock: MockClock) -> None:
        source = FakePagedSource([Page(rows=[], request_charge=1.0), Page(rows=["a"], request_charge=1.0)])
        pager = CostAwarePager(source, ru_threshold=10, ru_sleep_seconds=1.0, clock=mock_clock)

        pages = list(pager.pages(QUERY))

        assert [list(p.rows) for p in pages] == [[], ["a"]]

    def test_forwards_query_and_hints(self, mock_clock: MockClock) -> None:
        source = FakePagedSource(_pages(1.0))
        pager = CostAwarePager(
            source,
            ru_threshold=10,
            ru_sleep_seconds=1.0,
            max_item_count=123,
            max_concurrency=4,
            clock=mock_clock,
        )

        list(pager.pages(QUERY))

        assert source.calls == [(QUERY, 123, 4)]

    def test_each_call_starts_a_fresh_sequence(self, mock_clock: MockClock) -> None:
        source = FakePagedSource(_pages(1.0, 2.0))
        pager = CostAwarePager(source, ru_threshold=10, ru_sleep_seconds=1.0, clock=mock_clock)

        first = list(pager.pages(QUERY))
        second = list(pager.pages(QUERY))

        assert len(first) == len(second) == 2
        assert len(source.calls) == 2
        assert pager.pages_fetched == 4

    def test_source_is_not_called_until_iterated(self, empty_source: FakePagedSource) -> None:
        pager = CostAwarePager(empty_source, ru_threshold=10, ru_sleep_seconds=1.0, clock=MockClock())

        pager.pages(QUERY)

        assert empty_source.calls == []

    def test_fetch_error_propagates_after_delivered_pages(self, mock_clock: MockClock) -> None:
        source = FakePagedSource(_pages(1.0, 2.0, 3.0), fail_on_call=1, fail_after_pages=2)
        pager = CostAwarePager(source, ru_threshold=10, ru_sleep_seconds=1.0, clock=mock_clock)
        delivered: list[Page] = []

        with pytest.raises(FetchError) as exc_info:
            for page in pager.pages(QUERY):
                delivered.append(page)

        assert len(delivered) == 2
        assert exc_info.value.status_code == 429
        assert len(source.calls) == 1


class TestValidation:
    @pytest.mark.parametrize(
        ("threshold", "sleep"),
        [(-1, 1.0), (10, -0.5)],
    )
    def test_negative_values_rejected(self, empty_source: FakePagedSource, threshold: float, sleep: float) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            CostAwarePager(empty_source, ru_threshold=threshold, ru_sleep_seconds=sleep)


class TestThresholdScenario:
    def test_delay_only_after_second_page(self) -> None:
        """Threshold 1000 with page costs [500, 1200, 300]."""
        events: list[tuple[str, Any]] = []
        source = FakePagedSource(_pages(500, 1200, 300), events=events)
        pager = CostAwarePager(source, ru_threshold=1000, ru_sleep_seconds=1.0, clock=RecordingClock(events))

        list(pager.pages(QUERY))

        assert events == [("fetch", 1), ("fetch", 2), ("sleep", 1.0), ("fetch", 3)]
