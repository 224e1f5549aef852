"""Logging configuration for the monitor."""

import logging
import sys

import structlog


def setup_logging(service_name: str, log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structured logging for the monitor process.

    Console output is colored key/value lines; ``json_logs`` switches to one
    JSON object per line for log shippers.
    """
    level = logging.getLevelName(log_level.upper())
    renderer = (
        structlog.processors.JSONRenderer() if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # uvicorn and nats log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    structlog.get_logger(service_name).info(
        "Logging configured", service=service_name, log_level=log_level
    )
