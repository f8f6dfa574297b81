"""
Structured logging for the webinar sync service.

Every module logs through structlog; lines are rendered as JSON and carry
the job and connection ids of the sync run that emitted them.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

# OAuth material that must never reach a log line.
REDACTED_KEYS = frozenset(
    {"access_token", "refresh_token", "client_secret", "authorization", "code"}
)
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "psycopg.pool")


def setup_logging(log_level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_credentials,
            tag_sync_component,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def redact_credentials(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "[redacted]"
    return event_dict


def tag_sync_component(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Entries emitted inside a sync run are tagged so they can be filtered together."""
    if "job_id" in event_dict:
        event_dict.setdefault("component", "webinar_sync")
    return event_dict


def bind_job_context(job_id: str, connection_id: str) -> None:
    """Attach job identifiers to every log line emitted by the current task."""
    structlog.contextvars.bind_contextvars(job_id=job_id, connection_id=connection_id)


def clear_job_context() -> None:
    structlog.contextvars.unbind_contextvars("job_id", "connection_id")


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
