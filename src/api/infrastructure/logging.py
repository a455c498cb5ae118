"""Structlog configuration for accessflow.

Probes obtain their loggers through ``structlog.get_logger()`` and inherit
whatever this module configures. Call ``configure_logging()`` once at
process start, before the first probe logs.
"""

import logging
import os
import sys

import structlog

from infrastructure.settings import get_settings


def _wants_json(log_format: str) -> bool:
    if log_format != "auto":
        return log_format == "json"
    # FORCE_COLOR=1 keeps the console renderer in non-TTY containers
    force_color = os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes")
    return not (force_color or sys.stdout.isatty())


def configure_logging(json_output: bool | None = None) -> None:
    """Configure structlog processors, renderer and level.

    Level and renderer come from ``ACCESSFLOW_LOG_LEVEL`` and
    ``ACCESSFLOW_LOG_FORMAT``. With the ``auto`` format, colored console
    output is used on a TTY or when FORCE_COLOR is set, JSON lines otherwise.

    Args:
        json_output: Force JSON (True) or console (False) rendering,
            overriding the configured format.
    """
    settings = get_settings()
    if json_output is None:
        json_output = _wants_json(settings.log_format)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: list[structlog.types.Processor]
    if json_output:
        renderer = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
