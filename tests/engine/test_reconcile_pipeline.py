# tests/engine/test_reconcile_pipeline.py
"""Tests for the ID-reconciling export pipeline."""

import csv
from pathlib import Path

import pytest

from ruexport.contracts import ConfigurationError, FetchError, Page, QuerySpec
from ruexport.core.inputs import default_id_query
from ruexport.engine.clock import MockClock
from ruexport.engine.pager import CostAwarePager
from ruexport.engine.reconcile import IdReconcilingExportPipeline
from ruexport.plugins.sinks.csv_sink import ShardedCSVSink
from tests.fixtures.store import FakePagedSource, ids_param, store_responder

COLUMNS = ("field1", "field2", "field3")


def _pipeline(
    source: FakePagedSource,
    out_dir: Path,
    *,
    max_rows: int = 50_000,
    batch_size: int = 500,
    columns: tuple[str, ...] = COLUMNS,
) -> IdReconcilingExportPipeline:
    pager = CostAwarePager(source, ru_threshold=10_000, ru_sleep_seconds=1.0, clock=MockClock())
    sink = ShardedCSVSink(out_dir, "export", ["vin", *columns], max_rows_per_file=max_rows)
    return IdReconcilingExportPipeline(
        pager,
        sink,
        query_text=default_id_query("vin", columns),
        id_field="vin",
        columns=columns,
        id_batch_size=batch_size,
    )


def _read_rows(out_dir: Path) -> list[list[str]]:
    """Concatenate data rows of all shards in index order."""
    rows: list[list[str]] = []
    index = 1
    while (path := out_dir / f"export_{index}.csv").exists():
        with open(path, newline="", encoding="utf-8") as f:
            rows.extend(list(csv.reader(f))[1:])
        index += 1
    return rows


class TestReconciliation:
    def test_found_and_placeholder_rows_in_request_order(self, out_dir: Path) -> None:
        store = [{"vin": "X1", "field1": "a", "field2": "b", "field3": "c"}]
        source = FakePagedSource(responder=store_responder(store))

        result = _pipeline(source, out_dir).run(["X1", "x1", "X2"])

        assert (out_dir / "export_1.csv").read_text() == (
            'vin,field1,field2,field3\n"X1","a","b","c"\n"X2","","",""\n'
        )
        assert result.ids_requested == 2
        assert result.rows_emitted == 2
        assert result.ids_found == 1
        assert result.placeholders == 1
        assert result.batches == 1

    def test_query_binds_normalized_batch(self, out_dir: Path) -> None:
        source = FakePagedSource(responder=store_responder([]))

        _pipeline(source, out_dir).run([" x1 ", "X1", "x2"])

        query = source.calls[0][0]
        assert isinstance(query, QuerySpec)
        assert ids_param(query) == ["X1", "X2"]
        assert "ARRAY_CONTAINS(@ids, UPPER(c.vin))" in query.text

    def test_store_matching_is_case_insensitive(self, out_dir: Path) -> None:
        store = [{"vin": "ab12", "field1": 1, "field2": None, "field3": "z"}]
        source = FakePagedSource(responder=store_responder(store))

        _pipeline(source, out_dir).run(["AB12"])

        # the stored value is emitted, not the requested spelling
        assert _read_rows(out_dir) == [["ab12", "1", "", "z"]]

    def test_batches_partition_ids_in_order(self, out_dir: Path) -> None:
        ids = [f"id{i}" for i in range(7)]
        store = [{"vin": f"ID{i}", "field1": str(i)} for i in (6, 0, 3)]
        source = FakePagedSource(responder=store_responder(store, page_size=1))

        result = _pipeline(source, out_dir, batch_size=3).run(ids)

        assert [ids_param(call[0]) for call in source.calls] == [
            ["ID0", "ID1", "ID2"],
            ["ID3", "ID4", "ID5"],
            ["ID6"],
        ]
        rows = _read_rows(out_dir)
        assert [row[0] for row in rows] == [f"ID{i}" for i in range(7)]
        assert [row[1] for row in rows] == ["0", "", "", "3", "", "", "6"]
        assert result.batches == 3
        assert result.ids_found == 3
        assert result.placeholders == 4

    def test_missing_projection_keys_become_empty(self, out_dir: Path) -> None:
        store = [{"vin": "X1", "field2": "only"}]
        source = FakePagedSource(responder=store_responder(store))

        _pipeline(source, out_dir).run(["X1"])

        assert _read_rows(out_dir) == [["X1", "", "only", ""]]

    def test_duplicate_rows_last_seen_wins(self, out_dir: Path) -> None:
        pages = [
            Page(rows=[{"vin": "X1", "field1": "first"}], request_charge=1.0, has_more=True),
            Page(rows=[{"vin": "x1", "field1": "second"}], request_charge=1.0),
        ]
        source = FakePagedSource(pages)

        result = _pipeline(source, out_dir).run(["X1"])

        assert _read_rows(out_dir) == [["x1", "second", "", ""]]
        assert result.duplicate_rows == 1
        assert result.rows_emitted == 1

    def test_rows_without_identifier_are_ignored(self, out_dir: Path) -> None:
        pages = [
            Page(
                rows=[{"field1": "orphan"}, {"vin": None}, {"vin": "  "}, "scalar", {"vin": "X1", "field1": "ok"}],
                request_charge=1.0,
            )
        ]
        source = FakePagedSource(pages)

        result = _pipeline(source, out_dir).run(["X1", "X2"])

        assert _read_rows(out_dir) == [["X1", "ok", "", ""], ["X2", "", "", ""]]
        assert result.rows_without_id == 4

    def test_unrequested_rows_are_not_emitted(self, out_dir: Path) -> None:
        source = FakePagedSource([Page(rows=[{"vin": "OTHER"}, {"vin": "X1"}], request_charge=1.0)])

        result = _pipeline(source, out_dir).run(["X1"])

        assert [row[0] for row in _read_rows(out_dir)] == ["X1"]
        assert result.rows_emitted == 1

    def test_shards_split_across_batches(self, out_dir: Path) -> None:
        source = FakePagedSource(responder=store_responder([]))

        result = _pipeline(source, out_dir, max_rows=3, batch_size=2).run(["a", "b", "c", "d", "e"])

        assert [s.data_rows for s in result.shards] == [2, 2, 1]
        assert [row[0] for row in _read_rows(out_dir)] == ["A", "B", "C", "D", "E"]

    def test_custom_columns(self, out_dir: Path) -> None:
        store = [{"vin": "X1", "model": "T", "year": 1925}]
        source = FakePagedSource(responder=store_responder(store))

        pipeline = _pipeline(source, out_dir, columns=("model", "year"))
        pipeline.run(["x1"])

        assert pipeline.header == ("vin", "model", "year")
        assert (out_dir / "export_1.csv").read_text() == 'vin,model,year\n"X1","T","1925"\n'


class TestEmptyInput:
    def test_empty_id_list_is_zero_work(self, out_dir: Path) -> None:
        source = FakePagedSource(responder=store_responder([]))

        result = _pipeline(source, out_dir).run([])

        assert source.calls == []
        assert result.shards == []
        assert result.rows_emitted == 0
        assert list(out_dir.iterdir()) == []

    def test_only_comments_and_blanks(self, out_dir: Path) -> None:
        source = FakePagedSource(responder=store_responder([]))

        result = _pipeline(source, out_dir).run(["", "  ", "# header"])

        assert source.calls == []
        assert result.ids_requested == 0


class TestFailures:
    def test_fetch_failure_stops_run_and_keeps_flushed_shards(self, out_dir: Path) -> None:
        responder = store_responder([])
        source = FakePagedSource(responder=responder, fail_on_call=2, fail_after_pages=0)

        with pytest.raises(FetchError):
            _pipeline(source, out_dir, max_rows=3, batch_size=2).run(["a", "b", "c", "d"])

        assert _read_rows(out_dir) == [["A", "", "", ""], ["B", "", "", ""]]
        assert not (out_dir / "export_2.csv").exists()

    def test_invalid_projection_rejected(self, out_dir: Path, empty_source: FakePagedSource) -> None:
        pager = CostAwarePager(empty_source, ru_threshold=1, ru_sleep_seconds=0)
        sink = ShardedCSVSink(out_dir, "export", ["vin", "vin"], max_rows_per_file=10)

        with pytest.raises(ConfigurationError):
            IdReconcilingExportPipeline(
                pager, sink, query_text="SELECT 1", id_field="vin", columns=["vin"], id_batch_size=10
            )

    def test_non_positive_batch_size_rejected(self, out_dir: Path, empty_source: FakePagedSource) -> None:
        pager = CostAwarePager(empty_source, ru_threshold=1, ru_sleep_seconds=0)
        sink = ShardedCSVSink(out_dir, "export", ["vin"], max_rows_per_file=10)

        with pytest.raises(ValueError, match="positive"):
            IdReconcilingExportPipeline(pager, sink, query_text="SELECT 1", id_field="vin", columns=[], id_batch_size=0)


class TestLogging:
    def test_page_events_carry_batch_number(self, out_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        import json

        from ruexport.core.logging import configure_logging

        configure_logging(json_output=True)
        source = FakePagedSource(responder=store_responder([]))

        _pipeline(source, out_dir, batch_size=1).run(["a", "b"])

        events = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
        pages = [e for e in events if e["event"] == "Page fetched"]
        assert [e["batch"] for e in pages] == [1, 2]
        assert all("batch" not in e for e in events if e["event"] == "Shard saved")
