# src/ruexport/cli_formatters.py
"""Console and JSON renderings of run summaries and failures."""

from __future__ import annotations

import json
from typing import Any, Literal

import typer

from ruexport.contracts import ExportResult

OutputFormat = Literal["console", "json"]


def echo_summary(result: ExportResult, output_format: OutputFormat, *, kind: str) -> None:
    """Print the end-of-run summary.

    Args:
        result: Completed run summary
        output_format: 'console' or 'json'
        kind: Export kind label ("scalar" or "ids")
    """
    if output_format == "json":
        typer.echo(json.dumps({"event": "completed", "kind": kind, **result.to_dict()}))
        return

    for shard in result.shards:
        typer.echo(f"  Saved: {shard.path} ({shard.data_rows:,} data rows)")

    line = f"✓ Export completed: {result.rows_emitted:,} rows | {result.pages_fetched:,} pages | {len(result.shards)} file(s)"
    if kind == "ids":
        line += f" | {result.ids_found:,} found | {result.placeholders:,} placeholders"
    if result.throttle_count:
        line += f" | throttled {result.throttle_count}x"
    typer.echo(line)


def echo_error(message: str, output_format: OutputFormat, *, error_type: str = "Error") -> None:
    """Print a single diagnostic line for a failed run."""
    if output_format == "json":
        typer.echo(json.dumps({"event": "error", "error": message, "error_type": error_type}), err=True)
    else:
        typer.echo(f"ERROR: {message}", err=True)


def echo_dry_run(plan: dict[str, Any], output_format: OutputFormat, *, kind: str) -> None:
    """Print what a run would do; `plan` keys become console labels."""
    if output_format == "json":
        typer.echo(json.dumps({"event": "dry_run", "kind": kind, **plan}, default=str))
        return

    typer.echo("Dry run - would execute:")
    for key, value in plan.items():
        typer.echo(f"  {key.replace('_', ' ').capitalize()}: {value}")
