"""Structured logging for the analytics daemon.

Every record carries ``service`` so daemon and CLI output can be told apart
once shipped to one sink, and Decimal fields (prices, balances, rates) are
rendered as plain strings instead of their repr.
"""

import logging
from decimal import Decimal
from typing import Any

import structlog

SERVICE_NAME = "dex-analytics"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("aiohttp.access", "uvicorn.access", "aiosqlite")


def add_service(service: str) -> structlog.types.Processor:
    """Return a processor that stamps ``service`` on every event."""

    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def stringify_decimals(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    service: str = SERVICE_NAME,
) -> None:
    """Configure structlog on top of stdlib logging.

    ``log_format`` is "json" for production or "console" (default) for
    development. Uses structlog.contextvars so per-job context (job name,
    market id) bound inside fetch tasks does not leak between tasks.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service(service),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        stringify_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Records from aiohttp/uvicorn go through the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
