"""Structured logging for the API, services and CLI.

Events are structlog key/value records. Two things are added on top of the
usual level/timestamp processors:

- request context (request id, method, path) bound per request through
  contextvars by the API middleware
- masking of credentials and applicant PII before anything is rendered
"""

import logging
import sys
from typing import Any

import structlog

from diamondtier.settings import settings

MASK = "****"

# Values under these keys never reach the log output
SENSITIVE_KEYS = frozenset({
    "password",
    "new_password",
    "password_hash",
    "token",
    "access_token",
    "reset_token",
    "bootstrap_token",
    "authorization",
    "ein",
    "credit_score",
    "payment_details",
})

# Loggers too chatty for INFO outside development
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx")


def mask_sensitive(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive values; emails keep only their first letter and domain."""
    for key in list(event_dict):
        lowered = key.lower()
        if lowered in SENSITIVE_KEYS:
            event_dict[key] = MASK
        elif lowered in ("email", "to") and isinstance(event_dict[key], str) and "@" in event_dict[key]:
            local, _, domain = event_dict[key].partition("@")
            event_dict[key] = f"{local[:1]}{MASK}@{domain}"
    return event_dict


def configure_logging() -> None:
    """Configure structured logging."""
    level = logging.getLevelName(settings.log_level.upper())

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        mask_sensitive,
    ]

    if settings.log_format == "json":
        processors = shared + [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if settings.env != "development":
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(**values: Any) -> None:
    """Attach values to every event logged while handling the current request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
