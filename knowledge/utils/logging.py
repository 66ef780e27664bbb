"""
Structured logging utilities for the knowledge core.

This module provides:
- JSON output for deployments, coloured console output for development
- Correlation IDs shared by every stage of one document's ingestion
- document_context(), binding source and dataset ids to all log entries
  emitted while a document is processed
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Iterator
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from knowledge.config.settings import LoggingSettings

APP_NAME = "knowledge"

# Third-party clients that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "chromadb", "urllib3", "openai")

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Set or generate a correlation ID in the current context.

    Args:
        correlation_id: ID to use. If None, a UUID4 is generated.

    Returns:
        The correlation ID that was set.
    """
    cid = correlation_id or str(uuid4())
    correlation_id_var.set(cid)
    return cid


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


@contextmanager
def document_context(source_id: str, dataset_id: str) -> Iterator[str]:
    """
    Scope log context to the processing of one document.

    A fresh correlation ID is set and source/dataset ids are bound to every
    entry logged inside the block. On exit, including when the block raises
    or is cancelled, the caller's context is restored.

    Example:
        >>> with document_context("intro.md", "handbook") as cid:
        ...     logger.info("stage_started", stage="load")
    """
    cid = str(uuid4())
    token = correlation_id_var.set(cid)
    try:
        with structlog.contextvars.bound_contextvars(source_id=source_id, dataset_id=dataset_id):
            yield cid
    finally:
        correlation_id_var.reset(token)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Structlog processor adding the correlation ID to log entries."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["app"] = APP_NAME
    return event_dict


def _renderer(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_format: 'json' for machine-readable output, 'console' for humans.
    """
    level = getattr(logging, log_level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_correlation_id,
        add_app_context,
        *_renderer(log_format),
    ]

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def configure_logging(settings: "LoggingSettings | None" = None) -> None:
    """Configure logging from LoggingSettings, loading them from the environment if None."""
    if settings is None:
        from knowledge.config.settings import get_settings

        settings = get_settings().logging

    setup_logging(log_level=settings.log_level, log_format=settings.log_format)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LoggerMixin:
    """
    Give a class a structlog logger named after its module.

    Entries carry the class name as ``component``:

        class ChromaStore(LoggerMixin, Store):
            def delete_dataset(self, dataset_id):
                self.logger.warning("deleting_dataset", dataset_id=dataset_id)
    """

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        if not hasattr(self, "_logger"):
            cls = type(self)
            self._logger = get_logger(cls.__module__).bind(component=cls.__name__)
        return self._logger
