# src/ruexport/cli.py
"""ruexport Command Line Interface.

Entry point for the ruexport CLI tool.

Every setting can come from a flag, a COSMOS_* environment variable (a
.env file is loaded at start-up) or a YAML file passed with --settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, NoReturn

import typer

from ruexport import __version__
from ruexport.cli_formatters import OutputFormat, echo_dry_run, echo_error, echo_summary
from ruexport.cli_helpers import build_pager, build_sink, build_source, close_source
from ruexport.contracts import ExportError, ExportResult, QuerySpec, SettingsResult
from ruexport.core.config import load_id_settings, load_scalar_settings
from ruexport.core.inputs import default_id_query, load_ids, load_query
from ruexport.core.logging import get_logger, log_context
from ruexport.engine.reconcile import IdReconcilingExportPipeline
from ruexport.engine.scalar import ScalarExportPipeline

__all__ = ["app"]

logger = get_logger(__name__)

app = typer.Typer(
    name="ruexport",
    help="ruexport: RU-aware CSV exports from Azure Cosmos DB.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"ruexport version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # We handle existence check ourselves for better error message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """ruexport: RU-aware CSV exports from Azure Cosmos DB."""
    from ruexport.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


# === Options shared by both export commands ===

_SETTINGS = typer.Option(None, "--settings", "-s", help="Path to settings YAML file.")
_CONNECTION = typer.Option(None, "--connection", help="Cosmos DB connection string [env: COSMOS_CONNECTION_STRING].")
_ACCOUNT_URL = typer.Option(None, "--account-url", help="Cosmos DB account endpoint [env: COSMOS_ACCOUNT_URL].")
_ACCOUNT_KEY = typer.Option(None, "--account-key", help="Cosmos DB account key [env: COSMOS_ACCOUNT_KEY].")
_MANAGED_IDENTITY = typer.Option(False, "--managed-identity", help="Authenticate with DefaultAzureCredential.")
_DATABASE = typer.Option(None, "--database", help="Database id [env: COSMOS_DATABASE_ID].")
_CONTAINER = typer.Option(None, "--container", help="Container id [env: COSMOS_CONTAINER_ID].")
_OUT_DIR = typer.Option(None, "--out-dir", help="Output directory [default: .].")
_OUT_PREFIX = typer.Option(None, "--out-prefix", help="Shard file name prefix.")
_MAX_ROWS = typer.Option(None, "--max-rows", help="Maximum rows per file, header included [default: 50000].")
_RU_THRESHOLD = typer.Option(None, "--ru-threshold", help="Request charge above which to pause [default: 10000].")
_RU_SLEEP_MS = typer.Option(None, "--ru-sleep-ms", help="Pause after an over-threshold page [default: 1000].")
_MAX_ITEM_COUNT = typer.Option(None, "--max-item-count", help="Page size hint [default: 2000].")
_MAX_CONCURRENCY = typer.Option(None, "--max-concurrency", help="Parallelism hint [default: -1].")
_ENCODING = typer.Option(None, "--encoding", help="Shard file encoding [default: utf-8].")
_DRY_RUN = typer.Option(False, "--dry-run", "-n", help="Validate settings and inputs without querying.")
_FORMAT = typer.Option(
    "console",
    "--format",
    "-f",
    help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
)


def _fail(message: str, output_format: OutputFormat, *, error_type: str = "Error") -> NoReturn:
    echo_error(message, output_format, error_type=error_type)
    raise typer.Exit(1)


def _require_settings(result: SettingsResult[Any], output_format: OutputFormat) -> Any:
    if not result.ok:
        for line in result.errors:
            echo_error(line, output_format, error_type="ConfigurationError")
        raise typer.Exit(1)
    return result.settings


def _output_plan(config: Any) -> dict[str, Any]:
    return {
        "output": f"{config.output_dir / config.output_prefix}_<n>.csv",
        "max_rows_per_file": config.max_rows_per_file,
        "ru_threshold": config.ru_threshold,
        "ru_sleep_ms": config.ru_sleep_ms,
    }


def _common_overrides(
    *,
    connection: str | None,
    account_url: str | None,
    account_key: str | None,
    managed_identity: bool,
    database: str | None,
    container: str | None,
    out_dir: Path | None,
    out_prefix: str | None,
    max_rows: int | None,
    ru_threshold: float | None,
    ru_sleep_ms: int | None,
    max_item_count: int | None,
    max_concurrency: int | None,
    encoding: str | None,
) -> dict[str, Any]:
    return {
        "connection_string": connection,
        "account_url": account_url,
        "account_key": account_key,
        # Only an explicit flag overrides the environment
        "use_managed_identity": True if managed_identity else None,
        "database_id": database,
        "container_id": container,
        "output_dir": out_dir,
        "output_prefix": out_prefix,
        "max_rows_per_file": max_rows,
        "ru_threshold": ru_threshold,
        "ru_sleep_ms": ru_sleep_ms,
        "max_item_count": max_item_count,
        "max_concurrency": max_concurrency,
        "encoding": encoding,
    }


@app.command()
def scalar(
    query_file: Path | None = typer.Option(None, "--query-file", help="Query returning scalar values [env: COSMOS_QUERY_FILE]."),
    header: str | None = typer.Option(None, "--header", help="CSV header for the value column [default: value]."),
    settings: Path | None = _SETTINGS,
    connection: str | None = _CONNECTION,
    account_url: str | None = _ACCOUNT_URL,
    account_key: str | None = _ACCOUNT_KEY,
    managed_identity: bool = _MANAGED_IDENTITY,
    database: str | None = _DATABASE,
    container: str | None = _CONTAINER,
    out_dir: Path | None = _OUT_DIR,
    out_prefix: str | None = _OUT_PREFIX,
    max_rows: int | None = _MAX_ROWS,
    ru_threshold: float | None = _RU_THRESHOLD,
    ru_sleep_ms: int | None = _RU_SLEEP_MS,
    max_item_count: int | None = _MAX_ITEM_COUNT,
    max_concurrency: int | None = _MAX_CONCURRENCY,
    encoding: str | None = _ENCODING,
    dry_run: bool = _DRY_RUN,
    output_format: Literal["console", "json"] = _FORMAT,
) -> None:
    """Export the scalar results of a query (e.g. SELECT VALUE c.vin FROM c)."""
    overrides = _common_overrides(
        connection=connection,
        account_url=account_url,
        account_key=account_key,
        managed_identity=managed_identity,
        database=database,
        container=container,
        out_dir=out_dir,
        out_prefix=out_prefix,
        max_rows=max_rows,
        ru_threshold=ru_threshold,
        ru_sleep_ms=ru_sleep_ms,
        max_item_count=max_item_count,
        max_concurrency=max_concurrency,
        encoding=encoding,
    )
    overrides.update({"query_file": query_file, "header_name": header})
    config = _require_settings(load_scalar_settings(settings_file=settings, overrides=overrides), output_format)

    try:
        query_text = load_query(config.query_file)
    except ExportError as e:
        _fail(str(e), output_format, error_type=type(e).__name__)

    logger.info("Starting scalar export", settings=config.redacted())

    if dry_run:
        plan = {
            "container": f"{config.database_id}/{config.container_id}",
            "query_file": str(config.query_file),
            **_output_plan(config),
        }
        echo_dry_run(plan, output_format, kind="scalar")
        return

    source = build_source(config)
    try:
        pipeline = ScalarExportPipeline(build_pager(source, config), build_sink(config, [config.header_name]))
        with log_context(kind="scalar"):
            result: ExportResult = pipeline.run(QuerySpec.build(query_text))
    except ExportError as e:
        _fail(str(e), output_format, error_type=type(e).__name__)
    except OSError as e:
        _fail(f"Cannot prepare output directory {config.output_dir}: {e.strerror or e}", output_format, error_type="OSError")
    finally:
        close_source(source)

    echo_summary(result, output_format, kind="scalar")


@app.command()
def ids(
    ids_file: Path | None = typer.Option(None, "--ids-file", help="File with one ID per line [env: COSMOS_IDS_FILE]."),
    query_file: Path | None = typer.Option(None, "--query-file", help="Query using @ids (overrides the default template)."),
    id_field: str | None = typer.Option(None, "--id-field", help="Identifier property [default: vin]."),
    columns: str | None = typer.Option(None, "--columns", help="Comma-separated auxiliary columns [default: field1,field2,field3]."),
    id_batch: int | None = typer.Option(None, "--id-batch", help="IDs per query [default: 500]."),
    settings: Path | None = _SETTINGS,
    connection: str | None = _CONNECTION,
    account_url: str | None = _ACCOUNT_URL,
    account_key: str | None = _ACCOUNT_KEY,
    managed_identity: bool = _MANAGED_IDENTITY,
    database: str | None = _DATABASE,
    container: str | None = _CONTAINER,
    out_dir: Path | None = _OUT_DIR,
    out_prefix: str | None = _OUT_PREFIX,
    max_rows: int | None = _MAX_ROWS,
    ru_threshold: float | None = _RU_THRESHOLD,
    ru_sleep_ms: int | None = _RU_SLEEP_MS,
    max_item_count: int | None = _MAX_ITEM_COUNT,
    max_concurrency: int | None = _MAX_CONCURRENCY,
    encoding: str | None = _ENCODING,
    dry_run: bool = _DRY_RUN,
    output_format: Literal["console", "json"] = _FORMAT,
) -> None:
    """Export one row per ID in a list, with placeholders for IDs not found."""
    overrides = _common_overrides(
        connection=connection,
        account_url=account_url,
        account_key=account_key,
        managed_identity=managed_identity,
        database=database,
        container=container,
        out_dir=out_dir,
        out_prefix=out_prefix,
        max_rows=max_rows,
        ru_threshold=ru_threshold,
        ru_sleep_ms=ru_sleep_ms,
        max_item_count=max_item_count,
        max_concurrency=max_concurrency,
        encoding=encoding,
    )
    overrides.update(
        {
            "ids_file": ids_file,
            "query_file": query_file,
            "id_field": id_field,
            "columns": columns,
            "id_batch_size": id_batch,
        }
    )
    config = _require_settings(load_id_settings(settings_file=settings, overrides=overrides), output_format)

    try:
        requested = load_ids(config.ids_file)
        if config.query_file is not None:
            query_text = load_query(config.query_file)
        else:
            query_text = default_id_query(config.id_field, config.columns)
    except ExportError as e:
        _fail(str(e), output_format, error_type=type(e).__name__)

    if not requested:
        if output_format == "console":
            typer.echo("No IDs found in input file.")
        else:
            echo_summary(ExportResult(), output_format, kind="ids")
        return

    logger.info(
        "Starting ID export",
        ids_loaded=len(requested),
        id_batch_size=config.id_batch_size,
        max_rows_per_file=config.max_rows_per_file,
        ru_threshold=config.ru_threshold,
        settings=config.redacted(),
    )

    if dry_run:
        plan = {
            "container": f"{config.database_id}/{config.container_id}",
            "ids": len(requested),
            "batches": -(-len(requested) // config.id_batch_size),
            "id_batch_size": config.id_batch_size,
            "columns": ",".join(config.header),
            **_output_plan(config),
        }
        echo_dry_run(plan, output_format, kind="ids")
        return

    source = build_source(config)
    try:
        pipeline = IdReconcilingExportPipeline(
            build_pager(source, config),
            build_sink(config, config.header),
            query_text=query_text,
            id_field=config.id_field,
            columns=config.columns,
            id_batch_size=config.id_batch_size,
        )
        with log_context(kind="ids"):
            result: ExportResult = pipeline.run(requested)
    except ExportError as e:
        _fail(str(e), output_format, error_type=type(e).__name__)
    except OSError as e:
        _fail(f"Cannot prepare output directory {config.output_dir}: {e.strerror or e}", output_format, error_type="OSError")
    finally:
        close_source(source)

    echo_summary(result, output_format, kind="ids")


if __name__ == "__main__":
    app()
