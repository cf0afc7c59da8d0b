# src/ruexport/core/inputs.py
"""Input loading: ID lists, query files and the default ID query.

ID normalization rules:
- Lines are trimmed; blank lines and lines starting with '#' are ignored
- Deduplication is case-insensitive and keeps the first occurrence's position
- Surviving IDs are uppercased, matching UPPER(c.<id_field>) in the query
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from itertools import islice
from pathlib import Path
from typing import TypeVar

from ruexport.contracts.errors import ConfigurationError

T = TypeVar("T")

COMMENT_PREFIX = "#"
IDS_PARAMETER = "@ids"


def normalize_ids(lines: Iterable[str]) -> list[str]:
    """Trim, filter, dedupe (case-insensitive) and uppercase raw ID lines."""
    seen: set[str] = set()
    ids: list[str] = []
    for line in lines:
        candidate = line.strip()
        if not candidate or candidate.startswith(COMMENT_PREFIX):
            continue
        normalized = candidate.upper()
        if normalized in seen:
            continue
        seen.add(normalized)
        ids.append(normalized)
    return ids


def load_ids(path: Path, *, encoding: str = "utf-8-sig") -> list[str]:
    """Read and normalize an ID list file.

    An empty result is not an error here; callers treat it as a
    zero-work run.

    Raises:
        ConfigurationError: If the file is missing, unreadable or cannot be decoded.
    """
    text = _read_input(path, "IDs file", encoding)
    return normalize_ids(text.splitlines())


def load_query(path: Path) -> str:
    """Read a query file.

    Raises:
        ConfigurationError: If the file is missing, unreadable, undecodable or blank.
    """
    text = _read_input(path, "Query file", "utf-8-sig")
    if not text.strip():
        raise ConfigurationError(f"Query file is empty: {path}")
    return text


def _read_input(path: Path, label: str, encoding: str) -> str:
    try:
        return path.read_text(encoding=encoding)
    except FileNotFoundError:
        raise ConfigurationError(f"{label} not found: {path}") from None
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"{label} is not valid {encoding}: {path} ({e.reason})") from None
    except OSError as e:
        raise ConfigurationError(f"{label} cannot be read: {path} ({e.strerror or e})") from None


def validate_columns(names: Sequence[str], context: str) -> None:
    """Check projection names are usable as Cosmos SQL aliases.

    Raises:
        ConfigurationError: If a name is not an identifier or is duplicated.
    """
    seen: set[str] = set()
    for i, name in enumerate(names):
        if not name.isidentifier():
            raise ConfigurationError(f"{context}[{i}] '{name}' is not a valid field name")
        if name in seen:
            raise ConfigurationError(f"Duplicate field name '{name}' in {context}")
        seen.add(name)


def default_id_query(id_field: str, columns: Sequence[str]) -> str:
    """Build the default batch query for the ID pipeline.

    Projects the identifier and each auxiliary column under its own alias,
    filtered by membership of the uppercased identifier in @ids.
    """
    validate_columns([id_field, *columns], "projection")
    projection = ",\n".join(f"  c.{name} AS {name}" for name in (id_field, *columns))
    return f"SELECT\n{projection}\nFROM c\nWHERE ARRAY_CONTAINS({IDS_PARAMETER}, UPPER(c.{id_field}))\n"


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive chunks of `size` items; the last may be shorter."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    iterator = iter(items)
    while chunk := list(islice(iterator, size)):
        yield chunk
