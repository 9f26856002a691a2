"""
Logging for the intake pipeline.

structlog in front of stdlib logging. Entries carry the ``session_id`` of
the extraction session that is collecting and, while a relayed tool-call
event is being handled, that event's ``trace_id``. Production renders
JSON lines, anything else a console layout.

Usage:
    from voice_intake.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("field_ingested", field="firstName", confidence=0.95)
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog

from voice_intake.config import get_settings

# Set by ExtractionSession.start() and by the relay for each event.
session_id_var: ContextVar[str] = ContextVar("session_id", default="")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")

_CORRELATION_VARS = (("session_id", session_id_var), ("trace_id", trace_id_var))


def add_correlation_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: copy non-empty correlation IDs into the entry, keeping explicit ones."""
    for key, var in _CORRELATION_VARS:
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def generate_trace_id() -> str:
    """Short random hex ID for sessions and events."""
    return uuid.uuid4().hex[:12]


@contextmanager
def event_trace(trace_id: str | None = None) -> Iterator[str]:
    """Bind ``trace_id`` (a fresh one when not given) for the duration of one event."""
    token = trace_id_var.set(trace_id or generate_trace_id())
    try:
        yield trace_id_var.get()
    finally:
        trace_id_var.reset(token)


def setup_logging(json_logs: bool | None = None, level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        json_logs: Render JSON lines. Defaults to on in production.
        level: Root log level. Defaults to ``Settings.log_level``.
    """
    settings = get_settings()
    if json_logs is None:
        json_logs = settings.is_production

    # Applied to structlog entries and to records from plain stdlib loggers.
    pre_chain: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_ids,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final_processors: list[structlog.types.Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_logs:
        final_processors.append(structlog.processors.format_exc_info)
    final_processors.append(renderer)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(foreign_pre_chain=pre_chain, processors=final_processors))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
