"""
Structured logging configuration with request correlation.

Every module obtains its logger through ``get_logger(__name__)`` and logs
events with keyword context. Request and user identifiers are carried in
context variables so that log lines emitted deep inside checkout or webhook
processing can be correlated with the HTTP request that triggered them.
"""

import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

from storefront.core.config import get_settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "client_secret",
        "password",
        "secret",
        "signature",
        "stripe_signature",
        "token",
    }
)


def add_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Add request and user identifiers from context to the log event.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary to modify

    Returns:
        Modified event dictionary
    """
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    user_id = user_id_ctx.get()
    if user_id:
        event_dict["user_id"] = user_id
    return event_dict


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def redact_sensitive(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Mask values of keys that may carry credentials or payment secrets.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary to modify

    Returns:
        Event dictionary with sensitive values replaced
    """
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "***"
    return event_dict


def configure_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Development uses the coloured console renderer; every other environment
    emits one JSON object per line.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_ids,
        redact_sensitive,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set request ID in context for correlation.

    Args:
        request_id: Optional request ID, generates UUID if not provided

    Returns:
        Request ID that was set
    """
    if not request_id:
        request_id = str(uuid4())
    request_id_ctx.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_ctx.get()


def set_user_id(user_id: Optional[str]) -> None:
    user_id_ctx.set(user_id)


def clear_context() -> None:
    """Reset correlation context at the end of a request."""
    request_id_ctx.set("")
    user_id_ctx.set(None)


class PerformanceLogger:
    """
    Context manager that logs the duration of a block.

    Blocks slower than ``slow_threshold_ms`` are logged at warning level;
    blocks that raise are logged at error level with the exception type.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        slow_threshold_ms: float = 500.0,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.slow_threshold_ms = slow_threshold_ms
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                **self.context,
            )
            return

        log_method = (
            self.logger.warning
            if duration_ms > self.slow_threshold_ms
            else self.logger.info
        )
        log_method(
            "Operation completed",
            operation=self.operation,
            duration_ms=duration_ms,
            **self.context,
        )


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Create a performance logging context manager.

    Args:
        logger: Logger instance to use
        operation: Operation name for logging
        **context: Additional context to include in logs

    Returns:
        PerformanceLogger context manager

    Example:
        >>> with log_performance(logger, "checkout", user_id=user_id):
        ...     await service.create_order(...)
    """
    return PerformanceLogger(logger, operation, **context)
