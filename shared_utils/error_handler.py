"""
Structured error handling and response formatting.
Every engine failure carries a machine-readable code, an HTTP-equivalent
status and a context dict that callers can render.
"""

from typing import Optional, Dict, Any
import logging

from shared_utils.constants import ErrorCode, LogScope
from shared_utils.logging_utils import get_scoped_logger


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        error_code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        http_status: int = 500
    ):
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        self.http_status = http_status
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to response dictionary."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "context": self.context
            }
        }


class ValidationError(AppException):
    """Malformed or missing input. User-correctable."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = {**(context or {})}
        if field:
            ctx["field"] = field
        super().__init__(
            error_code=ErrorCode.INVALID_ARGUMENT.value,
            message=message,
            context=ctx,
            http_status=400
        )


class AuthenticationError(AppException):
    """Request carries no valid actor identity."""

    def __init__(self, message: str = "Unauthorized", context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.UNAUTHORIZED.value,
            message=message,
            context=context,
            http_status=401
        )


class ForbiddenError(AppException):
    """Actor lacks authority for the operation."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.FORBIDDEN.value,
            message=message,
            context=context,
            http_status=403
        )


class NotFoundError(AppException):
    """Meeting (or other addressed record) does not exist."""

    def __init__(self, resource: str, resource_id: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.NOT_FOUND.value,
            message=f"{resource} not found",
            context={**(context or {}), "resource": resource, "id": resource_id},
            http_status=404
        )


class InvalidStateError(AppException):
    """Meeting lifecycle does not permit the operation."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INVALID_STATE.value,
            message=message,
            context=context,
            http_status=400
        )


class AlreadyFinalizedError(AppException):
    """Write-once fields were already set; context holds the current state."""

    def __init__(self, meeting_id: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.ALREADY_FINALIZED.value,
            message=f"Meeting {meeting_id} has already been finalized",
            context={**(context or {}), "meeting_id": meeting_id},
            http_status=409
        )


class InconsistentStateError(AppException):
    """Upstream data-integrity violation (e.g. participant cardinality)."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INCONSISTENT_STATE.value,
            message=message,
            context=context,
            http_status=500
        )


class PersistenceError(AppException):
    """Storage read or write failed. Safe to retry the whole operation."""

    def __init__(self, operation: str, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.PERSISTENCE_ERROR.value,
            message=f"{operation} failed: {message}",
            context={**(context or {}), "operation": operation},
            http_status=500
        )


class ExternalServiceError(AppException):
    """External service unavailable error."""

    def __init__(self, service: str, message: str, context: Optional[Dict[str, Any]] = None):
        full_message = f"{service} unavailable: {message}"
        super().__init__(
            error_code=ErrorCode.EXTERNAL_SERVICE_ERROR.value,
            message=full_message,
            context={**(context or {}), "service": service},
            http_status=503
        )


class ConfigurationError(AppException):
    """Configuration error."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INVALID_CONFIG.value,
            message=message,
            context=context,
            http_status=500
        )


def log_exception(
    exc: Exception,
    scope: str = LogScope.ERROR_HANDLER,
    logger: Optional[logging.Logger] = None
) -> None:
    """Log exception with structured context.

    Args:
        exc: Exception to log
        scope: Log scope identifier
        logger: Optional custom logger (uses structlog if not provided)
    """
    if logger is None:
        logger = get_scoped_logger(scope)

    if isinstance(exc, AppException):
        logger.error(
            "app_exception",
            error_code=exc.error_code,
            message=exc.message,
            http_status=exc.http_status,
            context=exc.context
        )
    else:
        logger.error(
            "unexpected_exception",
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=exc,
        )


def handle_error(
    exc: Exception,
    scope: str = LogScope.ERROR_HANDLER,
    default_error_code: str = ErrorCode.PERSISTENCE_ERROR.value
) -> Dict[str, Any]:
    """Handle exception and return structured error response.

    Args:
        exc: Exception to handle
        scope: Log scope
        default_error_code: Default error code for non-AppException errors

    Returns:
        Structured error response dictionary
    """
    log_exception(exc, scope)

    if isinstance(exc, AppException):
        return exc.to_dict()
    return {
        "error": {
            "code": default_error_code,
            "message": "An unexpected error occurred",
            "context": {"error_type": type(exc).__name__}
        }
    }
