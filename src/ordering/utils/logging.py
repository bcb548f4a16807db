"""Logging configuration for the Ordering domain."""

import logging
import os

import structlog

logger = structlog.get_logger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog for the ordering service.

    JSON lines in production, a readable console renderer everywhere else.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if os.environ.get("PROTEAN_ENV") == "production"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)
