"""Structlog configuration for the authorization service.

Console rendering with colors when attached to a terminal, one JSON
object per line otherwise. Check-level events are emitted at debug and
are only visible with ``debug`` enabled.
"""

import logging
import os
import sys

import structlog


def _use_colors() -> bool:
    # FORCE_COLOR=1 enables colors outside a TTY (e.g. docker compose logs)
    if os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes"):
        return True
    return sys.stdout.isatty()


def _renderer(use_colors: bool) -> list[structlog.types.Processor]:
    if use_colors:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(sort_keys=True),
    ]


def configure_logging(debug: bool = False, service: str | None = None) -> None:
    """Configure structlog for the process.

    Args:
        debug: Emit debug events such as individual check results
        service: Service name stamped on every event
    """
    structlog.contextvars.clear_contextvars()
    if service is not None:
        structlog.contextvars.bind_contextvars(service=service)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_renderer(_use_colors()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
