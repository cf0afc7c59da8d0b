# src/ruexport/core/config.py
"""
Configuration schema and loading for ruexport.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction and passed explicitly
into each component; nothing downstream reads the environment.

Precedence (highest first):
1. Explicit overrides (CLI flags)
2. Environment variables (COSMOS_*)
3. Settings file (YAML)
4. Defaults from the Pydantic schema
"""

import codecs
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ruexport.contracts.errors import ConfigurationError
from ruexport.contracts.results import SettingsResult
from ruexport.core.inputs import validate_columns

ENVVAR_PREFIX = "COSMOS"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

# Field -> CLI flag, used to turn "field required" into an operator hint
_FIELD_FLAGS: dict[str, str] = {
    "connection_string": "--connection",
    "account_url": "--account-url",
    "account_key": "--account-key",
    "database_id": "--database",
    "container_id": "--container",
    "query_file": "--query-file",
    "ids_file": "--ids-file",
    "id_field": "--id-field",
    "columns": "--columns",
    "header_name": "--header",
    "output_dir": "--out-dir",
    "output_prefix": "--out-prefix",
    "id_batch_size": "--id-batch",
    "max_rows_per_file": "--max-rows",
    "ru_threshold": "--ru-threshold",
    "ru_sleep_ms": "--ru-sleep-ms",
    "max_item_count": "--max-item-count",
    "max_concurrency": "--max-concurrency",
    "encoding": "--encoding",
}

_SECRET_FIELDS = frozenset({"connection_string", "account_key"})


class ExportSettings(BaseModel):
    """Settings shared by the scalar and ID exports.

    Connection: exactly one auth method must be configured:
    1. connection_string - Cosmos DB connection string
    2. account_url + account_key - endpoint and primary/secondary key
    3. account_url + use_managed_identity - Azure AD via DefaultAzureCredential

    Example YAML:
        connection_string: "${COSMOS_CONNECTION_STRING}"
        database_id: fleet
        container_id: vehicles
        max_rows_per_file: 50000
        ru_threshold: 10000
        ru_sleep_ms: 1000
    """

    # Dynaconf parses numeric-looking env values; ids like "2024" must stay strings
    model_config = {"frozen": True, "extra": "forbid", "coerce_numbers_to_str": True}

    # Connection
    connection_string: str | None = Field(default=None, description="Cosmos DB connection string")
    account_url: str | None = Field(default=None, description="Cosmos DB account endpoint URL")
    account_key: str | None = Field(default=None, description="Cosmos DB account key")
    use_managed_identity: bool = Field(default=False, description="Authenticate with DefaultAzureCredential")
    database_id: str = Field(description="Cosmos DB database id")
    container_id: str = Field(description="Cosmos DB container id")

    # Output
    output_dir: Path = Field(default=Path("."), description="Directory for CSV shards")
    output_prefix: str = Field(default="export", min_length=1, description="Shard file name prefix")
    max_rows_per_file: int = Field(default=50_000, ge=2, description="Maximum rows per shard, header included")
    encoding: str = Field(default="utf-8", description="Shard file encoding")

    # RU pacing
    ru_threshold: float = Field(default=10_000.0, ge=0, description="Page request charge above which pacing kicks in")
    ru_sleep_ms: int = Field(default=1000, ge=0, description="Pacing delay after an over-threshold page")

    # Store hints
    max_item_count: int = Field(default=2000, description="Page size hint (-1 lets the store decide)")
    max_concurrency: int = Field(default=-1, ge=-1, description="Store-side parallelism hint")

    @model_validator(mode="before")
    @classmethod
    def drop_blank_strings(cls, data: Any) -> Any:
        """Treat blank string values (e.g. an empty env var) as unset."""
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if not (isinstance(v, str) and not v.strip())}
        return data

    @field_validator("max_item_count")
    @classmethod
    def validate_max_item_count(cls, v: int) -> int:
        if v == -1 or v > 0:
            return v
        raise ValueError("max_item_count must be -1 or a positive integer")

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding: {v}") from None
        return v

    @model_validator(mode="after")
    def validate_auth_method(self) -> "ExportSettings":
        """Ensure exactly one auth method is configured."""
        has_conn_string = self.connection_string is not None
        has_key = self.account_key is not None and self.account_url is not None
        has_managed_identity = self.use_managed_identity and self.account_url is not None

        active_count = sum([has_conn_string, has_key, has_managed_identity])
        if active_count == 0:
            if self.account_key is not None or self.use_managed_identity:
                raise ValueError("account_url is required with account_key or use_managed_identity")
            raise ValueError(
                "Missing connection settings. Provide one of: "
                "--connection (COSMOS_CONNECTION_STRING), "
                "--account-url with --account-key, or "
                "--account-url with --managed-identity"
            )
        if active_count > 1:
            raise ValueError(
                "Multiple authentication methods configured. Provide exactly one of: "
                "connection_string, account_url + account_key, or account_url + use_managed_identity"
            )
        return self

    @property
    def ru_sleep_seconds(self) -> float:
        return self.ru_sleep_ms / 1000.0

    def redacted(self) -> dict[str, Any]:
        """Dump settings for logs with secrets masked."""
        dumped = self.model_dump(mode="json")
        for name in _SECRET_FIELDS:
            if dumped.get(name) is not None:
                dumped[name] = "***"
        return dumped


class ScalarExportSettings(ExportSettings):
    """Settings for exporting a single scalar column from a free-form query.

    The query must return scalar values, e.g. `SELECT VALUE c.vin FROM c`.
    """

    query_file: Path = Field(description="File holding the Cosmos SQL query")
    output_prefix: str = Field(default="export_scalar", min_length=1)
    header_name: str = Field(default="value", min_length=1, description="CSV header for the single column")


class IdExportSettings(ExportSettings):
    """Settings for exporting one row per requested identifier.

    A custom query file must filter with `ARRAY_CONTAINS(@ids, UPPER(c.<id_field>))`
    and alias its projection to `id_field` plus `columns`.
    """

    ids_file: Path = Field(description="File with one identifier per line")
    query_file: Path | None = Field(default=None, description="Optional query overriding the default template")
    id_field: str = Field(default="vin", description="Identifier property name and CSV column")
    columns: tuple[str, ...] = Field(
        default=("field1", "field2", "field3"),
        description="Auxiliary projection columns, in CSV order",
    )
    id_batch_size: int = Field(default=500, gt=0, description="IDs per query batch")

    @field_validator("columns", mode="before")
    @classmethod
    def split_columns(cls, v: Any) -> Any:
        """Accept a comma-separated string (env var or CLI flag)."""
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v

    @model_validator(mode="after")
    def validate_projection(self) -> "IdExportSettings":
        try:
            validate_columns([self.id_field, *self.columns], "projection")
        except ConfigurationError as e:
            raise ValueError(str(e)) from None
        return self

    @property
    def header(self) -> tuple[str, ...]:
        return (self.id_field, *self.columns)


SettingsT = TypeVar("SettingsT", bound=ExportSettings)


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Expand ${VAR} and ${VAR:-default} patterns in string values.

    Lets a checked-in settings file reference secrets without holding them.
    """

    def replacer(match: re.Match[str]) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is not None:
            return env_value
        default = match.group(2)
        if default is not None:
            return default
        return match.group(0)

    return {k: _ENV_VAR_PATTERN.sub(replacer, v) if isinstance(v, str) else v for k, v in config.items()}


def _read_sources(settings_file: Path | None) -> dict[str, Any]:
    """Read the settings file and COSMOS_* environment through Dynaconf."""
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if settings_file is not None and not settings_file.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_file}")

    dynaconf_settings = Dynaconf(
        envvar_prefix=ENVVAR_PREFIX,
        settings_files=[str(settings_file)] if settings_file is not None else [],
        environments=False,
        load_dotenv=False,  # the CLI loads .env itself
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    return _expand_env_vars(raw)


def _format_errors(error: ValidationError) -> list[str]:
    """Render pydantic errors as one operator-facing line each."""
    lines: list[str] = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        msg = item["msg"].removeprefix("Value error, ")
        if item["type"] == "missing" and loc in _FIELD_FLAGS:
            env_name = f"{ENVVAR_PREFIX}_{loc.upper()}"
            lines.append(f"Missing {loc.replace('_', ' ')}. Provide {_FIELD_FLAGS[loc]} or set env var {env_name}.")
        elif loc:
            lines.append(f"{loc}: {msg}")
        else:
            lines.append(msg)
    return lines


def _load(
    model: type[SettingsT],
    *,
    settings_file: Path | None,
    overrides: Mapping[str, Any] | None,
) -> SettingsResult[SettingsT]:
    from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
    from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError

    try:
        raw = _read_sources(settings_file)
    except FileNotFoundError as e:
        return SettingsResult.failure(str(e))
    except (YamlParserError, YamlScannerError) as e:
        return SettingsResult.failure(f"YAML syntax error in {settings_file}: {e.problem}")

    for key, value in (overrides or {}).items():
        if value is not None:
            raw[key] = value

    # COSMOS_* variables belonging to other tools are not ours to validate
    known = {k: v for k, v in raw.items() if k in model.model_fields}
    try:
        return SettingsResult.success(model(**known))
    except ValidationError as e:
        return SettingsResult.failure(*_format_errors(e))


def load_scalar_settings(
    *,
    settings_file: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> SettingsResult[ScalarExportSettings]:
    """Build settings for the scalar export.

    Args:
        settings_file: Optional YAML file
        overrides: Explicit values (None entries are ignored)

    Returns:
        SettingsResult holding ScalarExportSettings or error lines
    """
    return _load(ScalarExportSettings, settings_file=settings_file, overrides=overrides)


def load_id_settings(
    *,
    settings_file: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> SettingsResult[IdExportSettings]:
    """Build settings for the ID-reconciling export.

    Args:
        settings_file: Optional YAML file
        overrides: Explicit values (None entries are ignored)

    Returns:
        SettingsResult holding IdExportSettings or error lines
    """
    return _load(IdExportSettings, settings_file=settings_file, overrides=overrides)
