"""
Structured Logging with Structlog.

Every entry carries the service name and version, the request id bound by
the HTTP middleware and, when tracing is on, the active trace and span ids.
Credentials passed as log fields are masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings
from app.observability.tracing import current_trace_ids

# Field names whose values never reach the log output
SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "password_confirmation",
        "password_hash",
        "token",
        "access_token",
        "authorization",
        "jwt_secret",
    }
)
REDACTED = "[REDACTED]"

# Chatty libraries; the request middleware already logs every request
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "asyncio": logging.WARNING,
}


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_sensitive(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential fields, including ones nested one level inside dicts."""
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_FIELDS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                inner: REDACTED if str(inner).lower() in SENSITIVE_FIELDS else inner_value
                for inner, inner_value in value.items()
            }
    return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach trace_id/span_id of the active span so logs join up with traces."""
    ids = current_trace_ids()
    if ids is not None:
        event_dict.setdefault("trace_id", ids[0])
        event_dict.setdefault("span_id", ids[1])
    return event_dict


def build_processors(log_format: str, log_level: str) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        add_trace_context,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    # Full tracebacks only when debugging
    if log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Defaults come from settings. A JSON entry looks like:
    {
        "event": "promo_code_redeemed",
        "level": "info",
        "timestamp": "2026-06-01T12:00:00.123456Z",
        "logger": "app.services.promo_codes",
        "service": "promo-code-api",
        "version": "0.1.0",
        "request_id": "9f1c...",
        "code": "SAVE20",
        "user_id": 2
    }
    """
    level_name = (log_level or settings.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, quiet_level))

    structlog.configure(
        processors=build_processors(log_format or settings.log_format, level_name),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind structured logging context for the duration of a block.

    Nested blocks may rebind the same keys; on exit the outer values are
    restored rather than dropped.

        with log_context(request_id="9f1c", user_id=2):
            logger.info("promo_code_validated")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> None:
        self._tokens = dict(structlog.contextvars.bind_contextvars(**self.context))

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}
