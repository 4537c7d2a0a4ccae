"""
Centralized logging utilities with scoped loggers and decorators.
Provides structured logging with consistent field names across services.
"""

import functools
import logging
import sys
import time
from typing import Any, Callable

import structlog

from shared_utils.constants import LogScope


_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def configure_logging(environment: str = "production", level: str = "INFO") -> None:
    """Configure structlog for the given environment.

    JSON lines for staging/production (log shipping), console output for
    local development. Safe to call more than once.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if environment == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=_SHARED_PROCESSORS + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


configure_logging()


def get_scoped_logger(scope: str) -> structlog.BoundLogger:
    """Get a structured logger bound to a LogScope value."""
    logger = structlog.get_logger()
    return logger.bind(scope=scope)


def log_execution(scope: str = LogScope.API):
    """Decorator to log start, success and failure of an operation with timing.

    Example:
        @log_execution(scope=LogScope.RESOLUTION)
        def finalize(self, request):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = get_scoped_logger(scope)
            start_time = time.time()

            logger.debug(
                f"{func.__name__}_start",
                func_name=func.__name__,
                kwargs_keys=list(kwargs.keys())
            )

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"{func.__name__}_failed",
                    func_name=func.__name__,
                    elapsed_seconds=round(time.time() - start_time, 4),
                    error_type=type(e).__name__,
                    error_message=str(e)
                )
                raise

            logger.info(
                f"{func.__name__}_success",
                func_name=func.__name__,
                elapsed_seconds=round(time.time() - start_time, 4),
                result_type=type(result).__name__
            )
            return result

        return wrapper
    return decorator


class ContextualLogger:
    """Scoped logger that can carry extra bound context (e.g. a meeting id)."""

    def __init__(self, scope: str, **context: Any):
        self.scope = scope
        self.context = context
        self.logger = get_scoped_logger(scope).bind(**context)

    def bind(self, **context: Any) -> "ContextualLogger":
        """Return a new logger with additional bound context."""
        return ContextualLogger(self.scope, **{**self.context, **context})

    def info(self, event_name: str, **kwargs):
        self.logger.info(event_name, **kwargs)

    def debug(self, event_name: str, **kwargs):
        self.logger.debug(event_name, **kwargs)

    def warning(self, event_name: str, **kwargs):
        self.logger.warning(event_name, **kwargs)

    def error(self, event_name: str, **kwargs):
        self.logger.error(event_name, **kwargs)

    def critical(self, event_name: str, **kwargs):
        """Log a data-integrity or money-movement fault that needs a human."""
        self.logger.critical(event_name, **kwargs)
