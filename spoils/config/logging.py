"""
Logging setup shared by the API process and the worker CLI.

Service modules log through the standard library with ``extra=`` fields while
the worker and request plumbing log through structlog. Both go through the
same processor chain, so request and job context bound in contextvars reaches
every line.
"""

import logging
import sys
from typing import Any

import structlog

from .settings import Settings, settings as default_settings

HANDLER_NAME = "spoils"


def _shared_processors(settings: Settings) -> list[Any]:
    processors: list[Any] = [
        # Request and job identity bound by add_request_context/add_job_context
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if settings.debug:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
            )
        )
    return processors


def _renderer(settings: Settings) -> Any:
    # JSON formatting for production, pretty printing for development
    if settings.debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and route standard library records through it."""
    settings = settings or default_settings
    level = getattr(logging, settings.log_level)
    shared = _shared_processors(settings)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                *shared,
                structlog.stdlib.add_logger_name,
                # extra= fields such as job_id or ingredient_name
                structlog.stdlib.ExtraAdder(),
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )

    # Replace only our own handler so repeated setup (app factory, CLI) is safe
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    structlog.configure(
        processors=[*shared, _renderer(settings)],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Add request-specific context to all log messages."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)


def add_job_context(job_id: str, task_type: str, **context: Any) -> None:
    """
    Bind job identity to log messages emitted while a job runs.

    Each job runs in its own task, so the binding is scoped to that job.
    """
    structlog.contextvars.bind_contextvars(
        job_id=job_id, task_type=task_type, **context
    )
