# src/ruexport/plugins/sinks/csv_sink.py
"""Sharded CSV sink.

Buffers formatted rows and writes them out as `{prefix}_{n}.csv` shards,
each holding at most `max_rows_per_file` lines including the header.

Field formatting:
- Every data field is quoted, embedded quotes are doubled
- None becomes an empty quoted field
- Non-string scalars are stringified; dicts and lists become compact JSON

Shards are written atomically: a temporary sibling is written and fsynced,
then renamed into place. A failed flush never leaves a partial shard under
its final name.
"""

from __future__ import annotations

import contextlib
import csv
import hashlib
import io
import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from ruexport.contracts import ShardArtifact, ShardWriteError
from ruexport.core.logging import get_logger

logger = get_logger(__name__)


def format_field(value: Any) -> str:
    """Render one value as CSV field text (before quoting)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


class ShardedCSVSink:
    """Write rows to size-bounded CSV shards.

    The buffer always starts with the header line. After each emit, if the
    buffer holds `max_rows_per_file` lines it is flushed to the next shard
    and re-seeded with the header. finalize() flushes a remaining buffer
    only if it holds at least one data row.

    Example:
        sink = ShardedCSVSink(Path("out"), "export", ["value"], max_rows_per_file=3)
        for value in ["a", "b", "c"]:
            sink.emit([value])
        artifacts = sink.finalize()
        # out/export_1.csv: value, "a", "b"
        # out/export_2.csv: value, "c"
    """

    def __init__(
        self,
        output_dir: Path,
        prefix: str,
        header: Sequence[str],
        *,
        max_rows_per_file: int,
        encoding: str = "utf-8",
        delimiter: str = ",",
    ) -> None:
        """Initialize the sink and create the output directory.

        Args:
            output_dir: Directory receiving the shards
            prefix: Shard file name prefix
            header: Column names, in field order
            max_rows_per_file: Maximum lines per shard, header included (>= 2)
            encoding: Shard file encoding
            delimiter: Field delimiter

        Raises:
            ValueError: If the header is empty or the capacity is below 2.
        """
        if not header:
            raise ValueError("header must contain at least one column")
        if max_rows_per_file < 2:
            raise ValueError(f"max_rows_per_file must be at least 2 (header + one row), got {max_rows_per_file}")

        self._output_dir = output_dir
        self._prefix = prefix
        self._header = tuple(header)
        self._max_rows = max_rows_per_file
        self._encoding = encoding
        self._delimiter = delimiter

        self._line_buffer = io.StringIO()
        self._data_writer = csv.writer(
            self._line_buffer,
            delimiter=delimiter,
            quoting=csv.QUOTE_ALL,
            lineterminator="\n",
        )
        self._header_line = self._format(self._header, quoting=csv.QUOTE_MINIMAL)

        self._rows: list[str] = [self._header_line]
        self._next_index = 1
        self._artifacts: list[ShardArtifact] = []

        self._output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def header(self) -> tuple[str, ...]:
        return self._header

    @property
    def artifacts(self) -> list[ShardArtifact]:
        return list(self._artifacts)

    @property
    def buffered_rows(self) -> int:
        """Data rows waiting in the buffer (header excluded)."""
        return len(self._rows) - 1

    def shard_path(self, index: int) -> Path:
        return self._output_dir / f"{self._prefix}_{index}.csv"

    def emit(self, values: Sequence[Any]) -> None:
        """Append one row; flush when the shard reaches capacity.

        Raises:
            ValueError: If the row width does not match the header.
            ShardWriteError: If a flush fails.
        """
        if len(values) != len(self._header):
            raise ValueError(f"Row has {len(values)} fields, header has {len(self._header)}")

        self._rows.append(self._format([format_field(v) for v in values]))
        if len(self._rows) >= self._max_rows:
            self._flush()

    def finalize(self) -> list[ShardArtifact]:
        """Flush remaining data rows and return every shard written.

        A header-only buffer is not flushed. Safe to call more than once.
        """
        if self.buffered_rows > 0:
            self._flush()
        return self.artifacts

    def _format(self, fields: Sequence[str], *, quoting: int = csv.QUOTE_ALL) -> str:
        if quoting == csv.QUOTE_ALL:
            writer = self._data_writer
        else:
            writer = csv.writer(self._line_buffer, delimiter=self._delimiter, quoting=quoting, lineterminator="\n")
        writer.writerow(fields)
        line = self._line_buffer.getvalue()
        self._line_buffer.seek(0)
        self._line_buffer.truncate(0)
        return line

    def _flush(self) -> None:
        """Write the buffer to the next shard, then reset it."""
        path = self.shard_path(self._next_index)
        tmp_path = path.with_name(f".{path.name}.tmp")

        try:
            payload = "".join(self._rows).encode(self._encoding)
        except UnicodeEncodeError as e:
            raise ShardWriteError(
                str(path), f"value {e.object[e.start : e.end]!r} cannot be encoded as {self._encoding}"
            ) from e

        try:
            with open(tmp_path, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise ShardWriteError(str(path), e.strerror or str(e)) from e

        artifact = ShardArtifact(
            path=str(path),
            index=self._next_index,
            data_rows=self.buffered_rows,
            content_hash=hashlib.sha256(payload).hexdigest(),
            size_bytes=len(payload),
        )
        self._artifacts.append(artifact)
        logger.info("Shard saved", path=str(path), data_rows=artifact.data_rows)

        self._next_index += 1
        self._rows = [self._header_line]
