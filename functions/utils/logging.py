"""structlog configuration for BuildBid."""

import logging
from typing import Optional

import structlog

from config.settings import settings


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure structlog for Cloud Functions and local runs.

    Args:
        level: Log level name. Defaults to ``settings.log_level``.
        json_output: Render JSON lines instead of console output.
            Defaults to ``settings.log_json``.
    """
    level = (level or settings.log_level).upper()
    if json_output is None:
        json_output = settings.log_json

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        cache_logger_on_first_use=False,
    )
