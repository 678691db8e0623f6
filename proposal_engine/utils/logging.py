"""structlog setup for the proposal engine.

Modules only call ``structlog.get_logger(__name__)``; applications call
configure_logging() once at startup to pick the renderer and level.
"""

import logging
from typing import Optional

import structlog

from proposal_engine.config.settings import settings


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structlog processors.

    Args:
        level: Minimum level name (defaults to settings.log_level)
        fmt: "console" for human-readable output, "json" for one JSON object
            per line (defaults to settings.log_format)
    """
    level_name = (level or settings.log_level).upper()
    renderer = (
        structlog.processors.JSONRenderer()
        if (fmt or settings.log_format) == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        cache_logger_on_first_use=False,
    )
