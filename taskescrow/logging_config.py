"""Structured logging configuration

Modules log through ``structlog.get_logger()`` with an event name and
keyword context, e.g. ``logger.info("task_accepted", task_id=...)``.
``configure_logging`` is called once at startup and decides how those
entries are rendered.
"""

import logging

import structlog
from structlog.typing import Processor


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Configure structlog processors

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        fmt: "json" for log aggregation, "console" for local development
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if fmt == "console":
        final_processors: list[Processor] = [structlog.dev.ConsoleRenderer()]
    else:
        final_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=shared_processors + final_processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
