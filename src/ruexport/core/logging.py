# src/ruexport/core/logging.py
"""Structured logging for export runs.

Progress events (pages, throttles, shards) are structlog key/value events.
The Azure SDK logs through stdlib logging; ProcessorFormatter renders those
records through the same chain so stdout carries one line shape.

Run context (export kind, current ID batch) is bound with log_context() and
merged into every event from contextvars, so the pager and sink need not
know which batch they are serving.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Chatty per-request loggers; a long export would print several lines per page
_AZURE_LOGGERS: tuple[str, ...] = (
    "azure",
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.cosmos",
    "azure.identity",
    "urllib3.connectionpool",
)

# Event keys whose values never reach the log
_SECRET_KEYS = frozenset({"account_key", "connection_string", "credential"})
_MASK = "***"


def _mask_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _SECRET_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = _MASK
    return event_dict


def _drop_formatter_bookkeeping(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def configure_logging(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route structlog and stdlib logging to stdout.

    Args:
        json_output: One JSON object per line instead of console rendering.
        level: Root log level name (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = getattr(logging, level.upper())
    structlog.contextvars.clear_contextvars()

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _mask_secrets,
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    render_chain: list[Any] = [_drop_formatter_bookkeeping]
    if json_output:
        render_chain.append(structlog.processors.format_exc_info)
    render_chain.append(renderer)

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # configure_logging runs once per CLI invocation; tests invoke it repeatedly
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processors=render_chain, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    azure_level = max(log_level, logging.WARNING)
    for name in _AZURE_LOGGERS:
        logging.getLogger(name).setLevel(azure_level)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind key/values to every event logged inside the block.

    Example:
        with log_context(kind="ids", batch=3):
            logger.info("Page fetched", page=1)  # carries kind and batch
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
