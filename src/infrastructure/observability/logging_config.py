"""
Structured logging configuration using structlog.

Every module logs through the stdlib ``logging.getLogger(__name__)``; this
module bridges those records into JSON lines enriched with timestamps,
levels, the service name and any context bound with
:func:`provisioning_context` for the duration of a step run.
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any
from uuid import UUID

import structlog

SERVICE_NAME: str = "provisioning-core"


def add_service_name(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject the service name into every log event."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog and the stdlib logging bridge for JSON output.

    Call this once per process (Celery worker start-up or CLI entry).

    Parameters
    ----------
    log_level:
        Minimum severity level as a string (``DEBUG``, ``INFO``, ``WARNING``,
        ``ERROR``, ``CRITICAL``).
    """

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # merge_contextvars first so project_id / step_name land on stdlib records too
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_name,  # type: ignore[list-item]
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger pre-populated with the given *name*."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def provisioning_context(
    project_id: UUID | str,
    step_name: str,
    **extra: Any,
) -> AbstractContextManager[None]:
    """Bind ``project_id`` and ``step_name`` to every log line emitted
    inside the ``with`` block, including from handlers and HTTP clients.

    The binding lives in a :mod:`contextvars` variable, so concurrent step
    runs on the same event loop never see each other's context.
    """
    return structlog.contextvars.bound_contextvars(
        project_id=str(project_id),
        step_name=step_name,
        **extra,
    )
