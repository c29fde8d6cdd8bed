"""Structured logging for the tenant core.

Events are key/value pairs rendered as JSON in deployed environments and
as colored console lines locally. Request handling binds ``tenant_id``
and ``user_id`` into structlog contextvars, so every event emitted while
serving a request carries them. Credential material is masked before
rendering, including inside nested mappings such as audit payloads.

Call configure_logging() once at application startup (FastAPI lifespan,
CLI entry point).
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog

REDACTED = "***REDACTED***"

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"api_key", "authorization", "credential", "jwt_secret", "password", "secret", "token"}
)
SENSITIVE_SUFFIXES: tuple[str, ...] = ("_token", "_secret", "_password")

JSON_ENVIRONMENTS: frozenset[str] = frozenset({"production", "staging"})

QUIET_LOGGERS: tuple[str, ...] = ("uvicorn.access", "sqlalchemy.engine", "sqlalchemy.pool")


def is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in SENSITIVE_KEYS or lowered.endswith(SENSITIVE_SUFFIXES)


def _mask(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return value
    return {
        k: REDACTED if isinstance(k, str) and is_sensitive(k) else _mask(v)
        for k, v in value.items()
    }


def redact_sensitive(
    logger: logging.Logger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Mask credential values at the top level and in nested mappings."""
    for key, value in list(event_dict.items()):
        if is_sensitive(key):
            event_dict[key] = REDACTED
        elif isinstance(value, Mapping):
            event_dict[key] = _mask(value)
    return event_dict


def configure_logging(
    environment: str = "development",
    log_level: str = "INFO",
) -> None:
    """Route structlog through the stdlib root logger.

    Args:
        environment: JSON output for production and staging, colored
            console output otherwise.
        log_level: Python log level name (DEBUG, INFO, WARNING, etc.).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive,
    ]

    renderer: structlog.types.Processor
    if environment in JSON_ENVIRONMENTS:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
